"""
docarchive Document Query — search, file-type filter, category scope and sort.

All functions are pure: they take the already-fetched document list and
return a new list. They run synchronously on every keystroke (after the
caller's debounce), toggle or refresh.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator

from docarchive.documents.models import Document, FileType
from docarchive.documents.tree import Forest, collation_key
from docarchive.engine.errors import ArchiveValidationError

logger = logging.getLogger("docarchive.documents.query")

SORT_KEYS = ("name", "date")


class DocumentQuery(BaseModel):
    """Current search/filter state of an explorer."""

    search: str = ""
    file_type: Optional[FileType] = None
    category_id: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    language: str = "primary"

    @field_validator("file_type", mode="before")
    @classmethod
    def empty_file_type(cls, v: Any) -> Any:
        # "" is the "All File Types" option
        if v == "" or v is None:
            return None
        try:
            return FileType(v)
        except ValueError:
            raise ValueError(f"unknown file type '{v}'")

    @property
    def search_term(self) -> str:
        return self.search.strip()


class DocumentSort(BaseModel):
    by: str = "date"
    descending: bool = True

    model_config = {"frozen": True}

    @field_validator("by")
    @classmethod
    def validate_by(cls, v: str) -> str:
        if v not in SORT_KEYS:
            raise ValueError(f"sort key must be name/date, got '{v}'")
        return v


def make_sort(by: str, descending: bool) -> DocumentSort:
    """Build a DocumentSort, turning a bad key into an ArchiveValidationError."""
    if by not in SORT_KEYS:
        raise ArchiveValidationError(
            f"Unknown sort key '{by}'",
            object_ref="documents.sort",
            validation_errors=[{"field": "by", "error": f"must be one of {SORT_KEYS}"}],
        )
    return DocumentSort(by=by, descending=descending)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def select_category_scope(
    documents: Iterable[Document],
    category_id: Optional[int],
    forest: Forest,
) -> List[Document]:
    """
    Documents shown for the selected category.

    ``None`` ("All Files") keeps uncategorized documents and documents filed
    directly under a root category; nested files only appear when their own
    folder is selected. Any other id is an exact match.
    """
    if category_id is None:
        root_ids = forest.root_ids()
        return [doc for doc in documents if doc.category is None or doc.category in root_ids]
    return [doc for doc in documents if doc.category == category_id]


def matches_search(doc: Document, search: str, language: str = "primary") -> bool:
    """Case-insensitive substring match on the display title and its fallback title."""
    needle = search.strip().casefold()
    if not needle:
        return True
    if needle in doc.display_title(language).casefold():
        return True
    return any(
        needle in (title or "").casefold()
        for title in (doc.title_primary, doc.title_secondary)
    )


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def filter_documents(
    documents: Iterable[Document],
    query: DocumentQuery,
    forest: Forest,
    scope_category: bool = True,
) -> List[Document]:
    """
    Apply category scope, search, file type and date window.

    ``scope_category=False`` skips the category scope; the tree view filters
    every folder's files with the same search/file-type rules.
    """
    items = list(documents)
    if scope_category:
        items = select_category_scope(items, query.category_id, forest)

    if query.search_term:
        items = [doc for doc in items if matches_search(doc, query.search_term, query.language)]

    if query.file_type is not None:
        items = [doc for doc in items if doc.file_type == query.file_type]

    if query.date_from is not None:
        start = _aware(query.date_from).timestamp()
        items = [doc for doc in items if doc.timestamp() >= start]
    if query.date_to is not None:
        end = _aware(query.date_to).timestamp()
        items = [doc for doc in items if doc.timestamp() <= end]

    return items


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

def sort_documents(
    documents: Iterable[Document],
    sort: Optional[DocumentSort] = None,
    language: str = "primary",
) -> List[Document]:
    """
    Sort by display title (locale-aware) or by created_at.

    Missing or unparseable dates count as the epoch, so such documents land
    at the chronological start. The document id is the final tie-break so
    repeated sorts of the same input are identical.
    """
    sort = sort or DocumentSort()
    items = list(documents)
    if sort.by == "name":
        items.sort(key=lambda d: (collation_key(d.display_title(language)), d.id), reverse=sort.descending)
    else:
        items.sort(key=lambda d: (d.timestamp(), d.id), reverse=sort.descending)
    return items


def query_documents(
    documents: Iterable[Document],
    query: DocumentQuery,
    forest: Forest,
    sort: Optional[DocumentSort] = None,
) -> List[Document]:
    """Filter then sort: the main list of the explorer."""
    return sort_documents(filter_documents(documents, query, forest), sort, query.language)


# ---------------------------------------------------------------------------
# Store parameters
# ---------------------------------------------------------------------------

def to_store_params(
    query: DocumentQuery,
    visibility_params: Optional[Dict[str, str]] = None,
    page: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Query parameters for ``GET documents``.

    The category is not sent: the whole visible set is fetched once and the
    tree shows every folder's files from it.
    """
    params: Dict[str, Any] = {}
    if query.search_term:
        params["search"] = query.search_term
    if query.file_type is not None:
        params["file_type"] = query.file_type.value
    if query.date_from is not None:
        params["date_from"] = query.date_from.date().isoformat()
    if query.date_to is not None:
        params["date_to"] = query.date_to.date().isoformat()
    if visibility_params:
        params.update(visibility_params)
    if page is not None:
        params["page"] = page
    return params
