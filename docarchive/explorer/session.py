"""
docarchive Explorer Session — state and callbacks of one browsing session.

The session owns the only mutable state of the explorer: the caller, the
loaded categories/documents, the expansion set, and the search, filter,
sort and selection parameters. Callbacks (on_select_category,
on_toggle_expand, on_search_change, ...) are plain state transitions and
never perform I/O. Everything the views show is recomputed from scratch
from that state.

ArchiveExplorerService performs the I/O: it fetches with the resolved
visibility scope, feeds the session, and turns failures into notifications
without touching the loaded data.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from docarchive.documents.flatten import ExpansionState, RenderRow, flatten, group_by_category
from docarchive.documents.models import Category, Document, FileType, Visibility
from docarchive.documents.query import (
    DocumentQuery,
    DocumentSort,
    filter_documents,
    make_sort,
    query_documents,
    to_store_params,
)
from docarchive.documents.tree import CategoryNode, Forest, SortPolicy, build_tree
from docarchive.engine.config import ExplorerConfig
from docarchive.engine.context import CallerContext
from docarchive.engine.errors import ArchiveError, ArchiveValidationError
from docarchive.security.permissions import (
    ExplorerMode,
    VisibilityFilter,
    VisibilityResolver,
    visibility_resolver,
)

logger = logging.getLogger("docarchive.explorer.session")


@dataclass(frozen=True)
class Notification:
    level: str  # "info" | "success" | "error"
    message: str
    retryable: bool = False


@dataclass(frozen=True)
class DownloadRequest:
    document_id: int
    filename: str
    path: str


class ExplorerSession:
    """
    Public and member archive explorer state.

    Starts on "All Files" with every folder collapsed.
    """

    def __init__(
        self,
        caller: CallerContext,
        mode: Optional[ExplorerMode] = None,
        config: Optional[ExplorerConfig] = None,
        resolver: Optional[VisibilityResolver] = None,
        visibility_override: Optional[Union[str, Visibility]] = None,
    ):
        config = config or ExplorerConfig()
        self._resolver = resolver or visibility_resolver
        self._caller = caller
        self._mode = mode or self._resolver.default_mode(caller)
        self._override = visibility_override
        self._language = config.language

        self._categories: List[Category] = []
        self._documents: List[Document] = []
        self._document_count = 0
        self._forest: Forest = build_tree([], SortPolicy.BROWSER)
        self._expansion = ExpansionState.empty()

        self._query = DocumentQuery(language=self._language)
        self._sort = make_sort(config.sort_by, config.sort_desc)
        self._view_mode = config.view_mode

        self._notifications: List[Notification] = []
        self._pending_downloads: List[DownloadRequest] = []
        self.needs_refresh = True

    # -------------------------------------------------------------------
    # Read-only state
    # -------------------------------------------------------------------

    @property
    def caller(self) -> CallerContext:
        return self._caller

    @property
    def mode(self) -> ExplorerMode:
        return self._mode

    @property
    def forest(self) -> Forest:
        return self._forest

    @property
    def expansion(self) -> ExpansionState:
        return self._expansion

    @property
    def query(self) -> DocumentQuery:
        return self._query

    @property
    def sort(self) -> DocumentSort:
        return self._sort

    @property
    def selected_category(self) -> Optional[int]:
        return self._query.category_id

    @property
    def view_mode(self) -> str:
        return self._view_mode

    @property
    def documents(self) -> List[Document]:
        return list(self._documents)

    @property
    def categories(self) -> List[Category]:
        return list(self._categories)

    @property
    def document_count(self) -> int:
        return self._document_count

    @property
    def notifications(self) -> List[Notification]:
        return list(self._notifications)

    @property
    def language(self) -> str:
        return self._language

    def scope(self) -> VisibilityFilter:
        return self._resolver.resolve_scope(self._caller, self._mode, self._override)

    def store_params(self, page: Optional[int] = None) -> Dict[str, Any]:
        return to_store_params(self._query, self.scope().as_params(), page)

    # -------------------------------------------------------------------
    # Data
    # -------------------------------------------------------------------

    def load(
        self,
        categories: Sequence[Category],
        documents: Sequence[Document],
        count: Optional[int] = None,
    ) -> None:
        """
        Replace the loaded data with a fresh fetch.

        Expanded ids and the selection survive a reload as long as their
        category still exists.
        """
        scope = self.scope()
        accepted = [doc for doc in documents if scope.accepts(doc)]
        if len(accepted) != len(documents):
            logger.warning(
                f"Store returned {len(documents) - len(accepted)} document(s) outside "
                f"scope '{scope.describe()}': dropped"
            )

        self._categories = list(categories)
        self._documents = accepted
        self._document_count = count if count is not None else len(accepted)
        self._forest = build_tree(self._categories, SortPolicy.BROWSER)
        self._expansion = ExpansionState(i for i in self._expansion.ids if i in self._forest)
        if self._query.category_id is not None and self._query.category_id not in self._forest:
            self._query = self._query.model_copy(update={"category_id": None})
        self.needs_refresh = False

    # -------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------

    def on_select_category(self, category_id: Optional[int]) -> None:
        """Select a folder (None = "All Files"); clears the search box."""
        if category_id is not None and category_id not in self._forest:
            raise ArchiveValidationError(
                f"Unknown category {category_id}",
                object_ref="explorer.select_category",
            )
        self._query = self._query.model_copy(update={"category_id": category_id, "search": ""})

    def on_toggle_expand(self, category_id: int) -> None:
        self._expansion = self._expansion.toggle(category_id)

    def on_search_change(self, text: str) -> None:
        self._query = self._query.model_copy(update={"search": text or ""})
        self.needs_refresh = True

    def on_sort_change(self, by: str, descending: bool) -> None:
        self._sort = make_sort(by, descending)

    def on_file_type_change(self, file_type: Optional[str]) -> None:
        if file_type in (None, ""):
            value = None
        else:
            try:
                value = FileType(file_type)
            except ValueError:
                raise ArchiveValidationError(
                    f"Unknown file type '{file_type}'",
                    object_ref="explorer.file_type",
                )
        self._query = self._query.model_copy(update={"file_type": value})
        self.needs_refresh = True

    def on_view_mode_change(self, view_mode: str) -> None:
        if view_mode not in ("list", "grid"):
            raise ArchiveValidationError(f"Unknown view mode '{view_mode}'", object_ref="explorer.view_mode")
        self._view_mode = view_mode

    def on_download(self, document_id: int) -> DownloadRequest:
        """Queue a download for the I/O layer; returns the request."""
        doc = self.find_document(document_id)
        if doc is None:
            raise ArchiveValidationError(
                f"Document {document_id} is not in the current view",
                object_ref="explorer.download",
            )
        request = DownloadRequest(
            document_id=doc.id,
            filename=doc.download_filename(self._language),
            path=self._resolver.download_path(self._mode, doc.id),
        )
        self._pending_downloads.append(request)
        return request

    def on_auth_change(self, caller: CallerContext) -> None:
        """
        Replace the caller wholesale; the visible set must be refetched.

        The public explorer stays public. Elsewhere a member keeps the member
        or personal view, any other caller falls back to its default mode.
        """
        self._caller = caller
        if self._mode is not ExplorerMode.PUBLIC:
            keep = caller.is_member and self._mode in (ExplorerMode.MEMBER, ExplorerMode.PERSONAL)
            if not keep:
                self._mode = self._resolver.default_mode(caller)
        self.needs_refresh = True

    def take_downloads(self) -> List[DownloadRequest]:
        pending, self._pending_downloads = self._pending_downloads, []
        return pending

    def notify(self, level: str, message: str, retryable: bool = False) -> None:
        self._notifications.append(Notification(level, message, retryable))

    def notify_error(self, error: ArchiveError) -> None:
        self.notify("error", error.message, error.retryable)

    def dismiss_notifications(self) -> None:
        self._notifications = []

    # -------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------

    def find_document(self, document_id: int) -> Optional[Document]:
        for doc in self._documents:
            if doc.id == document_id:
                return doc
        return None

    def tree_documents(self) -> List[Document]:
        """Documents shown in the folder tree: search and file type, any folder."""
        return filter_documents(self._documents, self._query, self._forest, scope_category=False)

    def render_rows(self) -> List[RenderRow]:
        return flatten(
            self._forest,
            self._expansion,
            group_by_category(self.tree_documents()),
            self._sort,
            self._language,
        )

    def visible_documents(self) -> List[Document]:
        """Main list: documents of the selected folder, filtered and sorted."""
        return query_documents(self._documents, self._query, self._forest, self._sort)

    def current_subfolders(self) -> Sequence[CategoryNode]:
        return self._forest.children_of(self._query.category_id)

    def breadcrumb(self) -> List[CategoryNode]:
        if self._query.category_id is None:
            return []
        return self._forest.path_to(self._query.category_id)

    def category_name(self, category_id: Optional[int]) -> str:
        node = self._forest.find(category_id)
        return node.category.display_name(self._language) if node else ""

    def title(self) -> str:
        if self._mode is ExplorerMode.PERSONAL:
            return self._caller.resource_title()
        return "Resources"


class SearchDebouncer:
    """
    Delays a search callback until typing pauses; a newer keystroke cancels
    the pending one. The explorer itself never debounces.
    """

    def __init__(self, delay_ms: int = 300):
        self._delay = delay_ms / 1000.0
        self._task: Optional[asyncio.Task] = None

    def schedule(self, callback: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        self.cancel()
        self._task = asyncio.ensure_future(self._run(callback))
        return self._task

    async def _run(self, callback: Callable[[], Awaitable[Any]]) -> None:
        await asyncio.sleep(self._delay)
        await callback()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


class ArchiveExplorerService:
    """Fetch and download orchestration around an ExplorerSession."""

    def __init__(self, session: ExplorerSession, client: Any):
        self._session = session
        self._client = client

    @property
    def session(self) -> ExplorerSession:
        return self._session

    async def refresh(self, page: Optional[int] = None) -> bool:
        """
        Refetch categories and documents for the current scope.

        On failure the previous data stays loaded and an error notification
        is added. Returns True when new data was loaded.
        """
        session = self._session
        try:
            params = session.store_params(page)
            categories, documents_page = await asyncio.gather(
                self._client.list_categories(admin=session.mode is ExplorerMode.ADMIN),
                self._client.list_documents(session.mode, params),
            )
        except ArchiveError as e:
            logger.error(f"Failed to load archive: {e.message}")
            session.notify_error(e)
            return False
        session.load(categories, documents_page.results, documents_page.count)
        return True

    async def download(self, document_id: int) -> Optional[bytes]:
        """
        Download one document. A failure becomes a retryable notification and
        leaves the render list untouched.
        """
        session = self._session
        request = session.on_download(document_id)
        try:
            content = await self._client.download(request.document_id, session.mode)
        except ArchiveError as e:
            logger.error(f"Failed to download document {document_id}: {e.message}")
            session.notify("error", "Failed to download document. Please try again.", retryable=True)
            return None
        finally:
            session.take_downloads()
        return content
