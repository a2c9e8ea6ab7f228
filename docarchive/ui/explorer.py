"""
docarchive UI — Resources explorer page (public and member).

Routes: /resources (public), /members/resources (member, personal)
Purpose: Browse the folder tree, search, filter by file type, sort, download.

ExplorerState keeps the raw fetched records as backend vars and the session
parameters (selection, expansion, search, filter, sort) as frontend vars.
Every event rebuilds an ExplorerSession from them, applies one callback and
republishes the derived views.
"""

from typing import Any, Dict, Optional

import reflex as rx

from docarchive.documents.models import FileType, parse_categories, parse_documents
from docarchive.engine.config import get_config
from docarchive.engine.context import CallerContext
from docarchive.engine.errors import ArchiveError
from docarchive.explorer.session import ArchiveExplorerService, ExplorerSession
from docarchive.security.permissions import ExplorerMode
from docarchive.store.client import ArchiveStoreClient
from docarchive.ui.layout import archive_layout, document_dict, row_dict

ALL_FILES = -1
FILE_TYPE_OPTIONS = ["all"] + [t.value for t in FileType]


class ExplorerState(rx.State):
    """State for the resources explorer."""

    # Caller
    mode: str = ExplorerMode.PUBLIC.value
    is_authenticated: bool = False
    role: str = "anonymous"
    member_type: str = ""
    user_id: int = 0
    token: str = ""

    # Session parameters
    selected_category: int = ALL_FILES
    expanded: list[int] = []
    search_query: str = ""
    file_type: str = "all"
    sort_by: str = ""
    sort_desc: bool = True
    view_mode: str = ""

    # Derived views
    title: str = "Resources"
    rows: list[dict] = []
    documents: list[dict] = []
    subfolders: list[dict] = []
    breadcrumb: list[dict] = []
    total_documents: int = 0

    # Feedback
    is_loading: bool = False
    error_message: str = ""
    can_retry: bool = False

    # Raw store records
    _categories: list[dict] = []
    _documents: list[dict] = []

    # -------------------------------------------------------------------
    # Session plumbing
    # -------------------------------------------------------------------

    def _caller(self) -> CallerContext:
        if not self.is_authenticated:
            return CallerContext.anonymous()
        return CallerContext.from_user_info({
            "id": self.user_id or None,
            "is_admin": self.role == "admin",
            "member_type": self.member_type or None,
        })

    def _session(self) -> ExplorerSession:
        explorer = get_config().explorer
        session = ExplorerSession(self._caller(), ExplorerMode(self.mode), explorer)
        session.load(parse_categories(self._categories), parse_documents(self._documents))
        if not self.sort_by:
            self.sort_by = explorer.sort_by
            self.sort_desc = explorer.sort_desc
        if not self.view_mode:
            self.view_mode = explorer.view_mode
        for category_id in self.expanded:
            if category_id in session.forest:
                session.on_toggle_expand(category_id)
        if self.selected_category != ALL_FILES and self.selected_category in session.forest:
            session.on_select_category(self.selected_category)
        session.on_search_change(self.search_query)
        session.on_file_type_change("" if self.file_type == "all" else self.file_type)
        session.on_sort_change(self.sort_by, self.sort_desc)
        return session

    def _publish(self, session: ExplorerSession) -> None:
        language = session.language
        self.title = session.title()
        self.expanded = sorted(session.expansion.ids)
        self.selected_category = ALL_FILES if session.selected_category is None else session.selected_category
        self.rows = [row_dict(row, language) for row in session.render_rows()]
        self.documents = [
            document_dict(doc, language, session.category_name(doc.category))
            for doc in session.visible_documents()
        ]
        self.subfolders = [
            {"id": node.id, "name": node.category.display_name(language), "has_children": node.has_children}
            for node in session.current_subfolders()
        ]
        self.breadcrumb = [
            {"id": node.id, "name": node.category.display_name(language)}
            for node in session.breadcrumb()
        ]
        self.total_documents = len(self.documents)
        errors = [n for n in session.notifications if n.level == "error"]
        if errors:
            self.error_message = errors[-1].message
            self.can_retry = errors[-1].retryable

    def _apply(self, callback: Any, *args: Any) -> None:
        try:
            session = self._session()
            callback(session, *args)
        except ArchiveError as e:
            self.error_message = e.message
            return
        self._publish(session)

    # -------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------

    async def load_archive(self) -> None:
        """Fetch categories and documents for the caller's scope."""
        self.is_loading = True
        self.error_message = ""
        session = self._session()
        client = ArchiveStoreClient(get_config().store, token=self.token or None)
        try:
            service = ArchiveExplorerService(session, client)
            if await service.refresh():
                self._categories = [c.model_dump(mode="json") for c in session.categories]
                self._documents = [d.model_dump(mode="json") for d in session.documents]
            self._publish(session)
        finally:
            await client.aclose()
            self.is_loading = False

    async def open_mode(self, mode: str) -> None:
        """Route entry: public or member explorer."""
        self.mode = ExplorerMode(mode).value
        self.selected_category = ALL_FILES
        self.expanded = []
        await self.load_archive()

    async def set_user(self, user_info: Optional[Dict[str, Any]], token: str = "") -> None:
        """Authentication changed: replace the caller and refetch."""
        caller = CallerContext.from_user_info(user_info, authenticated=bool(user_info))
        session = ExplorerSession(self._caller(), ExplorerMode(self.mode))
        session.on_auth_change(caller)
        self.mode = session.mode.value
        self.is_authenticated = caller.authenticated
        self.role = caller.role
        self.member_type = caller.member_type or ""
        self.user_id = caller.user_id or 0
        self.token = token
        await self.load_archive()

    async def select_category(self, category_id: int) -> None:
        target = None if category_id == ALL_FILES else category_id
        searched = bool(self.search_query.strip())
        self.search_query = ""
        self._apply(lambda s: s.on_select_category(target))
        if searched and not self.error_message:
            await self.load_archive()

    def toggle_expand(self, category_id: int) -> None:
        self._apply(lambda s: s.on_toggle_expand(category_id))

    async def set_search(self, value: str) -> None:
        # The cached documents were fetched with the previous search term
        self.search_query = value
        await self.load_archive()

    async def set_file_type(self, value: str) -> None:
        self.file_type = value or "all"
        await self.load_archive()

    def set_sort(self, value: str) -> None:
        """``name_asc`` / ``name_desc`` / ``date_asc`` / ``date_desc``."""
        by, _, direction = value.partition("_")
        self.sort_by = by
        self.sort_desc = direction != "asc"
        self._apply(lambda s: None)

    def toggle_view(self) -> None:
        self.view_mode = "grid" if self.view_mode == "list" else "list"

    async def download(self, document_id: int):
        """Download through the mode's endpoint; failures become a retryable message."""
        session = self._session()
        doc = session.find_document(document_id)
        client = ArchiveStoreClient(get_config().store, token=self.token or None)
        try:
            content = await ArchiveExplorerService(session, client).download(document_id)
        except ArchiveError as e:
            self.error_message = e.message
            return None
        finally:
            await client.aclose()
        if content is None or doc is None:
            self._publish(session)
            return None
        return rx.download(data=content, filename=doc.download_filename(session.language))

    def dismiss_error(self) -> None:
        self.error_message = ""
        self.can_retry = False


# ---------------------------------------------------------------------------
# Components
# ---------------------------------------------------------------------------

def _breadcrumb() -> rx.Component:
    return rx.hstack(
        rx.link("All Files", on_click=ExplorerState.select_category(ALL_FILES), cursor="pointer"),
        rx.foreach(
            ExplorerState.breadcrumb,
            lambda crumb: rx.hstack(
                rx.text(" / "),
                rx.link(crumb["name"], on_click=ExplorerState.select_category(crumb["id"]), cursor="pointer"),
            ),
        ),
        spacing="2",
    )


def _tree_row(row: dict) -> rx.Component:
    return rx.cond(
        row["type"] == "category",
        rx.hstack(
            rx.icon_button(
                rx.cond(row["expanded"], rx.icon("chevron-down", size=14), rx.icon("chevron-right", size=14)),
                on_click=ExplorerState.toggle_expand(row["id"]),
                variant="ghost",
                size="1",
            ),
            rx.icon("folder", size=16),
            rx.link(row["label"], on_click=ExplorerState.select_category(row["id"]), cursor="pointer"),
            rx.badge(row["count"], variant="soft"),
            padding_left=row["indent"],
            spacing="2",
        ),
        rx.hstack(
            rx.icon("file", size=14),
            rx.link(row["label"], on_click=ExplorerState.download(row["id"]), cursor="pointer", size="2"),
            padding_left=row["indent"],
            spacing="2",
        ),
    )


def _document_table() -> rx.Component:
    return rx.table.root(
        rx.table.header(
            rx.table.row(
                rx.table.column_header_cell("Title"),
                rx.table.column_header_cell("Type"),
                rx.table.column_header_cell("Size"),
                rx.table.column_header_cell("Date"),
                rx.table.column_header_cell(""),
            ),
        ),
        rx.table.body(
            rx.foreach(
                ExplorerState.documents,
                lambda doc: rx.table.row(
                    rx.table.cell(
                        rx.vstack(
                            rx.text(doc["title"], font_weight="bold"),
                            rx.text(doc["description"], size="1", color="gray"),
                            spacing="0",
                        ),
                    ),
                    rx.table.cell(rx.badge(doc["file_type"])),
                    rx.table.cell(doc["size"]),
                    rx.table.cell(doc["created"]),
                    rx.table.cell(
                        rx.button("Download", on_click=ExplorerState.download(doc["id"]), size="1", variant="outline"),
                    ),
                ),
            ),
        ),
    )


def _document_grid() -> rx.Component:
    return rx.hstack(
        rx.foreach(
            ExplorerState.documents,
            lambda doc: rx.card(
                rx.text(doc["title"], font_weight="bold"),
                rx.text(f"{doc['file_type']} · {doc['size']}", size="1", color="gray"),
                on_click=ExplorerState.download(doc["id"]),
                cursor="pointer",
                width="200px",
            ),
        ),
        wrap="wrap",
        spacing="4",
    )


def explorer_content(mode: str = ExplorerMode.PUBLIC.value) -> rx.Component:
    """Main explorer content: toolbar, tree, folder contents."""
    return rx.box(
        rx.heading(ExplorerState.title, size="6"),
        rx.hstack(
            rx.input(
                placeholder="Search documents...",
                value=ExplorerState.search_query,
                on_change=ExplorerState.set_search,
                debounce_timeout=get_config().explorer.search_debounce_ms,
                width="300px",
            ),
            rx.select(FILE_TYPE_OPTIONS, value=ExplorerState.file_type, on_change=ExplorerState.set_file_type),
            rx.select(
                ["date_desc", "date_asc", "name_asc", "name_desc"],
                placeholder="Sort",
                on_change=ExplorerState.set_sort,
            ),
            rx.button(
                rx.cond(ExplorerState.view_mode == "grid", "List View", "Grid View"),
                on_click=ExplorerState.toggle_view,
                variant="outline",
            ),
            spacing="4",
            margin_y="16px",
        ),
        rx.cond(
            ExplorerState.error_message != "",
            rx.callout(
                ExplorerState.error_message,
                color_scheme="red",
                on_click=ExplorerState.dismiss_error,
                margin_bottom="8px",
            ),
            rx.fragment(),
        ),
        rx.hstack(
            rx.box(
                rx.link("All Files", on_click=ExplorerState.select_category(ALL_FILES), cursor="pointer"),
                rx.foreach(ExplorerState.rows, _tree_row),
                width="320px",
                min_width="320px",
            ),
            rx.box(
                _breadcrumb(),
                rx.hstack(
                    rx.foreach(
                        ExplorerState.subfolders,
                        lambda f: rx.card(
                            rx.hstack(rx.icon("folder", size=16), rx.text(f["name"])),
                            on_click=ExplorerState.select_category(f["id"]),
                            cursor="pointer",
                        ),
                    ),
                    wrap="wrap",
                    spacing="3",
                    margin_y="12px",
                ),
                rx.cond(
                    ExplorerState.is_loading,
                    rx.spinner(),
                    rx.cond(
                        ExplorerState.total_documents > 0,
                        rx.cond(ExplorerState.view_mode == "grid", _document_grid(), _document_table()),
                        rx.text("No documents in this folder.", color="gray"),
                    ),
                ),
                flex="1",
            ),
            align="start",
            spacing="6",
        ),
        on_mount=ExplorerState.open_mode(mode),
    )


def explorer_page() -> rx.Component:
    """Public resources page."""
    return archive_layout(explorer_content(ExplorerMode.PUBLIC.value))


def member_explorer_page() -> rx.Component:
    """Member resources page; the caller is set through ExplorerState.set_user."""
    return archive_layout(explorer_content(ExplorerMode.MEMBER.value))
