"""
docarchive Admin Graph — the administrator's archive manager.

Composition:
    categories ──build_tree(EXPLORER)──▶ Forest
    Forest ──seed_admin──▶ ExpansionState (roots + first subfolder of each)
    documents (unrestricted) ──group_by_category──▶ flatten ──▶ rows

Search in the manager filters the flattened rows: folder rows match on
either name, file rows on titles, descriptions and author in both languages.

Mutations go straight to the store. Nothing is applied locally: a
rejection is raised with the store's own message, a success is followed by
a reload, so the view is always exactly what the store holds.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field, field_validator

from docarchive.documents.flatten import (
    CategoryRow,
    DocumentRow,
    ExpansionState,
    RenderRow,
    flatten,
    group_by_category,
)
from docarchive.documents.models import Category, Document, Tag, Visibility
from docarchive.documents.query import DocumentSort
from docarchive.documents.tree import Forest, SortPolicy, build_tree
from docarchive.engine.config import AdminConfig
from docarchive.engine.context import CallerContext
from docarchive.engine.errors import (
    ArchiveMutationRejected,
    ArchiveSecurityError,
    ArchiveValidationError,
)
from docarchive.engine.logging import log, log_admin_mutation, log_security_event
from docarchive.security.permissions import ExplorerMode
from docarchive.store.client import UploadRequest

logger = logging.getLogger("docarchive.admin.graph")

# Files inside a folder are listed by title, A to Z
_ADMIN_DOCUMENT_SORT = DocumentSort(by="name", descending=False)


@dataclass
class DocumentEdit:
    """Inline edit of one document's folder and visibility."""

    document_id: int
    category_id: Optional[int]
    visibility: Visibility


class CategoryDraft(BaseModel):
    """New-category form. Duplicate names are allowed; the parent is optional."""

    name_primary: str
    name_secondary: str = ""
    description: str = ""
    parent: Optional[int] = None
    order: int = Field(default=0)

    @field_validator("name_primary")
    @classmethod
    def name_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name_en": self.name_primary,
            "name_am": self.name_secondary,
            "description": self.description,
            "order": self.order,
        }
        if self.parent is not None:
            data["parent"] = self.parent
        return data


class ArchiveAdminGraph:
    """Tree, expansion, rows and mutations of the admin archive manager."""

    def __init__(
        self,
        caller: CallerContext,
        client: Any = None,
        config: Optional[AdminConfig] = None,
        language: str = "primary",
    ):
        if not caller.is_admin:
            log(log_security_event(
                "admin_graph_denied", caller.role, caller.member_type, None, user_id=caller.user_id,
            ))
            raise ArchiveSecurityError(
                "Administrator access required to manage the archive",
                object_ref="archive.admin",
                role=caller.role,
                required_role="admin",
            )
        self._caller = caller
        self._client = client
        self._config = config or AdminConfig()
        self._language = language

        self._categories: List[Category] = []
        self._documents: List[Document] = []
        self._tags: List[Tag] = []
        self._forest: Forest = build_tree([], SortPolicy.EXPLORER)
        self._expansion = ExpansionState.empty()
        self._seeded = False
        self._editing: Optional[DocumentEdit] = None

    # -------------------------------------------------------------------
    # Data
    # -------------------------------------------------------------------

    @property
    def forest(self) -> Forest:
        return self._forest

    @property
    def expansion(self) -> ExpansionState:
        return self._expansion

    @property
    def categories(self) -> List[Category]:
        return list(self._categories)

    @property
    def documents(self) -> List[Document]:
        return list(self._documents)

    @property
    def tags(self) -> List[Tag]:
        return list(self._tags)

    @property
    def editing(self) -> Optional[DocumentEdit]:
        return self._editing

    def load(
        self,
        categories: Sequence[Category],
        documents: Sequence[Document],
        tags: Optional[Sequence[Tag]] = None,
    ) -> None:
        """
        Replace categories and documents. The admin expansion seed is applied
        on the first load that has categories; later loads keep the
        administrator's expansion for folders that still exist.
        """
        self._categories = list(categories)
        self._documents = list(documents)
        if tags is not None:
            self._tags = list(tags)
        self._forest = build_tree(self._categories, SortPolicy.EXPLORER)

        if not self._seeded and len(self._forest):
            if self._config.seed_expansion:
                self._expansion = ExpansionState.seed_admin(self._forest)
            self._seeded = True
        else:
            self._expansion = ExpansionState(i for i in self._expansion.ids if i in self._forest)

        if self._editing is not None and self.find_document(self._editing.document_id) is None:
            self._editing = None

    async def reload(self) -> None:
        client = self._require_client()
        categories = await client.list_categories(admin=True)
        page = await client.list_documents(ExplorerMode.ADMIN, {})
        tags = await client.list_tags()
        self.load(categories, page.results, tags)

    def find_document(self, document_id: int) -> Optional[Document]:
        for doc in self._documents:
            if doc.id == document_id:
                return doc
        return None

    # -------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------

    def toggle(self, category_id: int) -> None:
        self._expansion = self._expansion.toggle(category_id)

    def restore_expansion(self, expansion: ExpansionState) -> None:
        """Reinstate a saved expansion; the admin seed is not applied again."""
        self._expansion = ExpansionState(i for i in expansion.ids if i in self._forest)
        self._seeded = True

    def document_counts(self) -> Dict[int, int]:
        """Direct (non-recursive) document count per category id."""
        counts = {node.id: 0 for node in self._forest.iter_nodes()}
        for doc in self._documents:
            if doc.category in counts:
                counts[doc.category] += 1
        return counts

    def rows(self, search: str = "") -> List[RenderRow]:
        rows = flatten(
            self._forest,
            self._expansion,
            group_by_category(self._documents),
            _ADMIN_DOCUMENT_SORT,
            self._language,
        )
        needle = (search or "").strip()
        if not needle:
            return rows
        return [row for row in rows if _row_matches(row, needle)]

    def stats(self, search: str = "") -> Dict[str, int]:
        rows = self.rows(search)
        return {
            "documents": sum(1 for row in rows if isinstance(row, DocumentRow)),
            "categories": sum(1 for row in rows if isinstance(row, CategoryRow)),
        }

    def category_choices(self) -> List[Tuple[int, str]]:
        """Every folder as an indented (id, label) option, in tree order."""
        return [
            (node.id, "  " * depth + node.category.display_name(self._language))
            for node, depth in self._forest.walk()
        ]

    # -------------------------------------------------------------------
    # Inline edit
    # -------------------------------------------------------------------

    def begin_edit(self, document_id: int) -> DocumentEdit:
        doc = self.find_document(document_id)
        if doc is None:
            raise ArchiveValidationError(f"Unknown document {document_id}", object_ref="admin.edit")
        self._editing = DocumentEdit(document_id=doc.id, category_id=doc.category, visibility=doc.visibility)
        return self._editing

    def update_edit(
        self,
        category_id: Optional[int] = None,
        visibility: Optional[Union[str, Visibility]] = None,
        clear_category: bool = False,
    ) -> DocumentEdit:
        edit = self._require_edit()
        if clear_category:
            edit.category_id = None
        elif category_id is not None:
            if category_id not in self._forest:
                raise ArchiveValidationError(
                    f"Unknown category {category_id}",
                    object_ref="admin.edit",
                    validation_errors=[{"field": "category_id", "error": "unknown category"}],
                )
            edit.category_id = category_id
        if visibility is not None:
            try:
                edit.visibility = Visibility(visibility)
            except ValueError:
                raise ArchiveValidationError(
                    f"Unknown visibility '{visibility}'",
                    object_ref="admin.edit",
                    validation_errors=[{"field": "visibility", "error": "unknown tag"}],
                )
        return edit

    def cancel_edit(self) -> None:
        self._editing = None

    async def commit_edit(self) -> Document:
        edit = self._require_edit()
        client = self._require_client()
        updated = await self._mutate(
            "update", "document", edit.document_id,
            client.update_document(edit.document_id, edit.category_id, edit.visibility),
        )
        self._editing = None
        await self.reload()
        return updated

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------

    async def create_category(self, draft: CategoryDraft) -> Category:
        if draft.parent is not None and draft.parent not in self._forest:
            raise ArchiveValidationError(
                f"Unknown parent category {draft.parent}",
                object_ref="admin.create_category",
                validation_errors=[{"field": "parent", "error": "unknown category"}],
            )
        client = self._require_client()
        created = await self._mutate("create", "category", None, client.create_category(draft.to_payload()))
        await self.reload()
        return created

    async def delete_category(self, category_id: int) -> None:
        """Delete a folder. A store rejection (e.g. folder in use) is raised verbatim."""
        client = self._require_client()
        await self._mutate("delete", "category", category_id, client.delete_category(category_id))
        await self.reload()

    async def delete_document(self, document_id: int) -> None:
        client = self._require_client()
        await self._mutate("delete", "document", document_id, client.delete_document(document_id))
        await self.reload()

    def start_upload_for_category(self, category_id: int) -> UploadRequest:
        if category_id not in self._forest:
            raise ArchiveValidationError(f"Unknown category {category_id}", object_ref="admin.upload")
        return UploadRequest(category_id=category_id)

    def validate_upload(self, filename: str, size: int) -> None:
        if not filename:
            raise ArchiveValidationError("A file is required", object_ref="admin.upload")
        max_bytes = self._config.max_upload_size_mb * 1024 * 1024
        if size > max_bytes:
            raise ArchiveValidationError(
                f"File size ({size / 1024 / 1024:.1f} MB) exceeds "
                f"upload limit ({self._config.max_upload_size_mb} MB)",
                object_ref="admin.upload",
                validation_errors=[{"field": "file", "error": "too large"}],
            )

    async def upload(
        self,
        request: UploadRequest,
        filename: str,
        content: bytes,
        content_type: Optional[str] = None,
    ) -> Document:
        if not (request.title_primary or "").strip():
            raise ArchiveValidationError(
                "A title is required",
                object_ref="admin.upload",
                validation_errors=[{"field": "title_en", "error": "required"}],
            )
        self.validate_upload(filename, len(content))
        if content_type is None:
            content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        client = self._require_client()
        created = await self._mutate(
            "upload", "document", None,
            client.upload_document(request, filename, content, content_type),
        )
        await self.reload()
        return created

    async def create_tag(self, name: str) -> Tag:
        if not name or not name.strip():
            raise ArchiveValidationError("Tag name is required", object_ref="admin.create_tag")
        client = self._require_client()
        tag = await self._mutate("create", "tag", None, client.create_tag(name.strip()))
        self._tags = await client.list_tags()
        return tag

    async def rename_tag(self, tag_id: int, name: str) -> Tag:
        if not name or not name.strip():
            raise ArchiveValidationError("Tag name is required", object_ref="admin.rename_tag")
        self._require_tag(tag_id)
        client = self._require_client()
        tag = await self._mutate("update", "tag", tag_id, client.update_tag(tag_id, name.strip()))
        # Documents carry tag names
        await self.reload()
        return tag

    async def delete_tag(self, tag_id: int) -> None:
        self._require_tag(tag_id)
        client = self._require_client()
        await self._mutate("delete", "tag", tag_id, client.delete_tag(tag_id))
        await self.reload()

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------

    async def _mutate(self, operation: str, record_type: str, record_id: Optional[int], call: Any) -> Any:
        try:
            result = await call
        except ArchiveMutationRejected as e:
            logger.error(f"{record_type} {operation} rejected by store: {e.message}")
            log(log_admin_mutation(
                operation, record_type, record_id, False, user_id=self._caller.user_id, error=e.message,
            ))
            raise
        created_id = getattr(result, "id", record_id)
        logger.info(f"{record_type} {operation} succeeded (id={created_id})")
        log(log_admin_mutation(operation, record_type, created_id, True, user_id=self._caller.user_id))
        return result

    def _require_client(self) -> Any:
        if self._client is None:
            raise ArchiveValidationError("No store client configured", object_ref="admin.client")
        return self._client

    def _require_tag(self, tag_id: int) -> None:
        if all(tag.id != tag_id for tag in self._tags):
            raise ArchiveValidationError(f"Unknown tag {tag_id}", object_ref="admin.tag", tag_id=tag_id)

    def _require_edit(self) -> DocumentEdit:
        if self._editing is None:
            raise ArchiveValidationError("No document is being edited", object_ref="admin.edit")
        return self._editing

    def __repr__(self) -> str:
        return (
            f"<ArchiveAdminGraph categories={len(self._forest)} "
            f"documents={len(self._documents)} expanded={len(self._expansion)}>"
        )


def _row_matches(row: RenderRow, needle: str) -> bool:
    if isinstance(row, CategoryRow):
        return row.node.category.matches(needle)
    return row.doc.matches_text(needle)
