"""
docarchive UI — Archive Manager page (administrators).

Route: /admin/archive
Purpose: Folder tree with every document, inline category/visibility edit,
create/delete folders, upload into a folder, delete documents.

Every event rebuilds an ArchiveAdminGraph from the raw records held as
backend vars; mutations go to the store and the graph reloads after each.
"""

import logging
from typing import Any, Dict, Optional

import reflex as rx

from docarchive.admin.graph import ArchiveAdminGraph, CategoryDraft
from docarchive.documents.flatten import ExpansionState
from docarchive.documents.models import Visibility, parse_categories, parse_documents
from docarchive.engine.config import get_config
from docarchive.engine.context import CallerContext
from docarchive.engine.errors import ArchiveError
from docarchive.store.client import ArchiveStoreClient, UploadRequest
from docarchive.ui.layout import archive_layout, row_dict

logger = logging.getLogger("docarchive.ui.archive_manager")

NO_CATEGORY = "none"
VISIBILITY_OPTIONS = [v.value for v in Visibility]


class AdminArchiveState(rx.State):
    """State for the archive manager."""

    # Caller
    is_admin: bool = False
    user_id: int = 0
    token: str = ""

    # Tree
    expanded: list[int] = []
    seeded: bool = False
    search_query: str = ""
    rows: list[dict] = []
    total_documents: int = 0
    total_categories: int = 0
    category_options: list[list[str]] = []

    # Inline edit
    editing_id: int = -1
    edit_category: str = NO_CATEGORY
    edit_visibility: str = Visibility.PUBLIC.value

    # Upload
    upload_category: str = NO_CATEGORY
    upload_visibility: str = Visibility.PUBLIC.value
    uploading: bool = False

    # Feedback
    is_loading: bool = False
    action_message: str = ""
    error_message: str = ""

    # Raw store records
    _categories: list[dict] = []
    _documents: list[dict] = []

    # -------------------------------------------------------------------
    # Graph plumbing
    # -------------------------------------------------------------------

    def _graph(self, client: Any = None) -> ArchiveAdminGraph:
        caller = CallerContext.from_user_info(
            {"id": self.user_id or None, "is_admin": True}, authenticated=self.is_admin,
        )
        graph = ArchiveAdminGraph(caller, client, get_config().admin)
        graph.load(parse_categories(self._categories), parse_documents(self._documents))
        if self.seeded:
            graph.restore_expansion(ExpansionState(self.expanded))
        return graph

    def _publish(self, graph: ArchiveAdminGraph) -> None:
        self._categories = [c.model_dump(mode="json") for c in graph.categories]
        self._documents = [d.model_dump(mode="json") for d in graph.documents]
        self.expanded = sorted(graph.expansion.ids)
        self.seeded = self.seeded or len(graph.forest) > 0
        names = {node.id: node.category.display_name() for node in graph.forest.iter_nodes()}
        self.rows = [
            row_dict(row, "primary", names.get(getattr(row, "category_id", None), ""))
            for row in graph.rows(self.search_query)
        ]
        stats = graph.stats(self.search_query)
        self.total_documents = stats["documents"]
        self.total_categories = stats["categories"]
        self.category_options = [[str(i), label] for i, label in graph.category_choices()]

    async def _mutate(self, action: Any, success: str) -> None:
        self.action_message = ""
        self.error_message = ""
        client = ArchiveStoreClient(get_config().store, token=self.token or None)
        try:
            graph = self._graph(client)
            await action(graph)
            self._publish(graph)
            self.action_message = success
        except ArchiveError as e:
            logger.warning(f"Archive manager action failed: {e!r}")
            # Store messages are shown verbatim
            self.error_message = e.message
        finally:
            await client.aclose()

    # -------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------

    async def set_user(self, user_info: Optional[Dict[str, Any]], token: str = "") -> None:
        caller = CallerContext.from_user_info(user_info, authenticated=bool(user_info))
        self.is_admin = caller.is_admin
        self.user_id = caller.user_id or 0
        self.token = token
        await self.load_archive()

    async def load_archive(self) -> None:
        self.is_loading = True
        try:
            await self._mutate(lambda graph: graph.reload(), "")
        finally:
            self.is_loading = False

    def _refresh_view(self, category_id: Optional[int] = None) -> None:
        try:
            graph = self._graph()
        except ArchiveError as e:
            self.error_message = e.message
            return
        if category_id is not None:
            graph.toggle(category_id)
        self._publish(graph)

    def toggle_expand(self, category_id: int) -> None:
        self._refresh_view(category_id)

    def set_search(self, value: str) -> None:
        self.search_query = value
        self._refresh_view()

    def begin_edit(self, document_id: int) -> None:
        try:
            edit = self._graph().begin_edit(document_id)
        except ArchiveError as e:
            self.error_message = e.message
            return
        self.editing_id = edit.document_id
        self.edit_category = NO_CATEGORY if edit.category_id is None else str(edit.category_id)
        self.edit_visibility = edit.visibility.value

    def set_edit_category(self, value: str) -> None:
        self.edit_category = value

    def set_edit_visibility(self, value: str) -> None:
        self.edit_visibility = value

    def cancel_edit(self) -> None:
        self.editing_id = -1

    async def commit_edit(self) -> None:
        document_id = self.editing_id
        category = self.edit_category
        visibility = self.edit_visibility

        async def action(graph: ArchiveAdminGraph) -> None:
            graph.begin_edit(document_id)
            if category == NO_CATEGORY:
                graph.update_edit(visibility=visibility, clear_category=True)
            else:
                graph.update_edit(category_id=int(category), visibility=visibility)
            await graph.commit_edit()

        await self._mutate(action, "Document updated successfully!")
        if not self.error_message:
            self.editing_id = -1

    async def create_category(self, form_data: dict) -> None:
        parent = form_data.get("parent") or NO_CATEGORY
        try:
            draft = CategoryDraft(
                name_primary=form_data.get("name_en", ""),
                name_secondary=form_data.get("name_am", ""),
                description=form_data.get("description", ""),
                parent=None if parent == NO_CATEGORY else int(parent),
                order=int(form_data.get("order") or 0),
            )
        except ValueError as e:
            self.error_message = f"Invalid category: {e}"
            return
        await self._mutate(lambda graph: graph.create_category(draft), "Category created successfully!")

    async def delete_category(self, category_id: int) -> None:
        await self._mutate(lambda graph: graph.delete_category(category_id), "Category deleted successfully!")

    async def delete_document(self, document_id: int) -> None:
        await self._mutate(lambda graph: graph.delete_document(document_id), "Document deleted successfully!")

    def start_upload(self, category_id: int) -> None:
        self.upload_category = str(category_id)

    def set_upload_category(self, value: str) -> None:
        self.upload_category = value

    def set_upload_visibility(self, value: str) -> None:
        self.upload_visibility = value

    async def handle_upload(self, files: list[rx.UploadFile]) -> None:
        """Upload files into the chosen folder; the file name is the title."""
        self.uploading = True
        try:
            for file in files:
                content = await file.read()
                filename = file.filename or "upload"

                async def action(graph: ArchiveAdminGraph) -> None:
                    if self.upload_category == NO_CATEGORY:
                        request = UploadRequest()
                    else:
                        request = graph.start_upload_for_category(int(self.upload_category))
                    request.title_primary = filename.rsplit(".", 1)[0] or filename
                    request.visibility = Visibility(self.upload_visibility)
                    await graph.upload(request, filename, content, file.content_type)

                await self._mutate(action, f"Uploaded {filename} successfully!")
                if self.error_message:
                    break
        finally:
            self.uploading = False


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

def _category_select(value: Any, on_change: Any) -> rx.Component:
    return rx.select.root(
        rx.select.trigger(placeholder="No category"),
        rx.select.content(
            rx.select.item("No category", value=NO_CATEGORY),
            rx.foreach(
                AdminArchiveState.category_options,
                lambda opt: rx.select.item(opt[1], value=opt[0]),
            ),
        ),
        value=value,
        on_change=on_change,
    )


def _edit_row(row: dict) -> rx.Component:
    return rx.cond(
        AdminArchiveState.editing_id == row["id"],
        rx.table.row(
            rx.table.cell(
                rx.hstack(
                    _category_select(AdminArchiveState.edit_category, AdminArchiveState.set_edit_category),
                    rx.select(
                        VISIBILITY_OPTIONS,
                        value=AdminArchiveState.edit_visibility,
                        on_change=AdminArchiveState.set_edit_visibility,
                    ),
                    rx.button("Save", on_click=AdminArchiveState.commit_edit, size="1"),
                    rx.button("Cancel", on_click=AdminArchiveState.cancel_edit, size="1", variant="outline"),
                    padding_left=row["indent"],
                    spacing="2",
                ),
                col_span=5,
            ),
        ),
        rx.fragment(),
    )


def _manager_row(row: dict) -> rx.Component:
    return rx.cond(
        row["type"] == "category",
        rx.table.row(
            rx.table.cell(
                rx.hstack(
                    rx.icon_button(
                        rx.cond(row["expanded"], rx.icon("chevron-down", size=14), rx.icon("chevron-right", size=14)),
                        on_click=AdminArchiveState.toggle_expand(row["id"]),
                        variant="ghost",
                        size="1",
                    ),
                    rx.icon("folder", size=16),
                    rx.text(row["label"], font_weight="bold"),
                    rx.badge(row["count"], variant="soft"),
                    padding_left=row["indent"],
                    spacing="2",
                ),
            ),
            rx.table.cell(""),
            rx.table.cell(""),
            rx.table.cell(""),
            rx.table.cell(
                rx.hstack(
                    rx.icon_button(rx.icon("upload", size=14), on_click=AdminArchiveState.start_upload(row["id"]), size="1", variant="ghost"),
                    rx.icon_button(rx.icon("trash-2", size=14), on_click=AdminArchiveState.delete_category(row["id"]), size="1", variant="ghost", color_scheme="red"),
                ),
            ),
        ),
        rx.fragment(
            rx.table.row(
                rx.table.cell(
                    rx.hstack(
                        rx.icon("file", size=14),
                        rx.text(row["label"]),
                        padding_left=row["indent"],
                        spacing="2",
                    ),
                ),
                rx.table.cell(rx.badge(row["visibility"])),
                rx.table.cell(row["size"]),
                rx.table.cell(row["created"]),
                rx.table.cell(
                    rx.hstack(
                        rx.icon_button(rx.icon("pencil", size=14), on_click=AdminArchiveState.begin_edit(row["id"]), size="1", variant="ghost"),
                        rx.icon_button(rx.icon("trash-2", size=14), on_click=AdminArchiveState.delete_document(row["id"]), size="1", variant="ghost", color_scheme="red"),
                    ),
                ),
            ),
            _edit_row(row),
        ),
    )


def _category_form() -> rx.Component:
    return rx.form(
        rx.hstack(
            rx.input(name="name_en", placeholder="Name (English) *", required=True),
            rx.input(name="name_am", placeholder="Name (Amharic)"),
            rx.input(name="description", placeholder="Description"),
            rx.input(name="order", placeholder="Order", type="number"),
            rx.select.root(
                rx.select.trigger(placeholder="Parent (optional)"),
                rx.select.content(
                    rx.select.item("No parent", value=NO_CATEGORY),
                    rx.foreach(
                        AdminArchiveState.category_options,
                        lambda opt: rx.select.item(opt[1], value=opt[0]),
                    ),
                ),
                name="parent",
            ),
            rx.button("Create Category", type="submit"),
            spacing="2",
            wrap="wrap",
        ),
        on_submit=AdminArchiveState.create_category,
        reset_on_submit=True,
    )


def _upload_form() -> rx.Component:
    return rx.box(
        rx.heading("Upload", size="4", margin_top="24px"),
        rx.hstack(
            _category_select(AdminArchiveState.upload_category, AdminArchiveState.set_upload_category),
            rx.select(
                VISIBILITY_OPTIONS,
                value=AdminArchiveState.upload_visibility,
                on_change=AdminArchiveState.set_upload_visibility,
            ),
            spacing="2",
        ),
        rx.upload(
            rx.text("Drag & drop files here or click to browse"),
            border="1px dashed",
            padding="32px",
            text_align="center",
            margin_top="8px",
        ),
        rx.button(
            "Upload",
            on_click=AdminArchiveState.handle_upload(rx.upload_files()),
            loading=AdminArchiveState.uploading,
            margin_top="8px",
        ),
    )


def archive_manager() -> rx.Component:
    """Main archive manager content."""
    return rx.box(
        rx.heading("Archive Manager", size="6"),
        rx.hstack(
            rx.input(
                placeholder="Search folders and documents...",
                value=AdminArchiveState.search_query,
                on_change=AdminArchiveState.set_search,
                width="300px",
            ),
            rx.text(f"{AdminArchiveState.total_categories} folders · {AdminArchiveState.total_documents} documents", color="gray"),
            spacing="4",
            margin_y="16px",
        ),
        _category_form(),
        rx.cond(
            AdminArchiveState.error_message != "",
            rx.callout(AdminArchiveState.error_message, color_scheme="red", margin_top="8px"),
            rx.fragment(),
        ),
        rx.cond(
            AdminArchiveState.action_message != "",
            rx.callout(AdminArchiveState.action_message, color_scheme="green", margin_top="8px"),
            rx.fragment(),
        ),
        rx.cond(
            AdminArchiveState.is_loading,
            rx.spinner(),
            rx.table.root(
                rx.table.header(
                    rx.table.row(
                        rx.table.column_header_cell("Name"),
                        rx.table.column_header_cell("Visibility"),
                        rx.table.column_header_cell("Size"),
                        rx.table.column_header_cell("Date"),
                        rx.table.column_header_cell("Actions"),
                    ),
                ),
                rx.table.body(rx.foreach(AdminArchiveState.rows, _manager_row)),
                margin_top="16px",
            ),
        ),
        _upload_form(),
        on_mount=AdminArchiveState.load_archive,
    )


def archive_manager_page() -> rx.Component:
    """Admin archive manager page."""
    return archive_layout(archive_manager(), title="Archive Manager")
