"""Unit tests for docarchive.explorer.session — ExplorerSession, SearchDebouncer, ArchiveExplorerService."""

import asyncio

import pytest

from docarchive.engine.config import ExplorerConfig
from docarchive.engine.errors import ArchiveNetworkError, ArchiveSecurityError, ArchiveValidationError
from docarchive.explorer.session import (
    ArchiveExplorerService,
    ExplorerSession,
    SearchDebouncer,
)
from docarchive.security.permissions import ExplorerMode


def _keys(rows):
    return [row.key for row in rows]


def _ids(items):
    return [item.id for item in items]


@pytest.fixture
def public_session(anonymous, sample_categories, sample_documents):
    session = ExplorerSession(anonymous)
    session.load(sample_categories, sample_documents)
    return session


class TestBylawsWalkthrough:
    """Bylaws (1) › 2024 (2): Charter filed in Bylaws, AGM Minutes in 2024."""

    def test_select_expand_and_drill_down(self, anonymous, bylaws_archive):
        categories, documents = bylaws_archive
        session = ExplorerSession(anonymous)
        session.load(categories, documents)

        session.on_select_category(1)
        assert _keys(session.render_rows()) == ["category-1"]
        assert _ids(session.visible_documents()) == [10]

        session.on_toggle_expand(1)
        assert _keys(session.render_rows()) == ["category-1", "category-2", "document-10"]

        session.on_toggle_expand(2)
        rows = session.render_rows()
        assert [(r.key, r.depth) for r in rows] == [
            ("category-1", 0),
            ("category-2", 1),
            ("document-11", 2),
            ("document-10", 1),
        ]
        # The main list still only shows the selected folder's own files
        assert _ids(session.visible_documents()) == [10]

        session.on_select_category(2)
        assert _ids(session.visible_documents()) == [11]
        assert [n.id for n in session.breadcrumb()] == [1, 2]


class TestSessionState:
    def test_defaults(self, anonymous):
        session = ExplorerSession(anonymous)
        assert session.mode is ExplorerMode.PUBLIC
        assert session.selected_category is None
        assert len(session.expansion) == 0
        assert session.sort.by == "date"
        assert session.sort.descending
        assert session.view_mode == "list"
        assert session.needs_refresh

    def test_config(self, anonymous):
        config = ExplorerConfig(sort_by="name", sort_desc=False, view_mode="grid", language="secondary")
        session = ExplorerSession(anonymous, config=config)
        assert session.sort.by == "name"
        assert not session.sort.descending
        assert session.view_mode == "grid"
        assert session.language == "secondary"

    def test_default_mode_follows_role(self, regular_member, admin):
        assert ExplorerSession(regular_member).mode is ExplorerMode.MEMBER
        assert ExplorerSession(admin).mode is ExplorerMode.ADMIN

    def test_store_params(self, anonymous):
        session = ExplorerSession(anonymous)
        session.on_search_change("minutes")
        assert session.store_params(page=2) == {"search": "minutes", "visibility": "public", "page": 2}

    def test_member_scope_params(self, executive_member):
        assert ExplorerSession(executive_member).store_params() == {"visibility": "executive"}

    def test_visibility_override(self, regular_member):
        session = ExplorerSession(regular_member, visibility_override="general_assembly")
        assert session.store_params() == {"visibility": "general_assembly"}

    def test_member_in_admin_mode_refused(self, regular_member):
        session = ExplorerSession(regular_member, mode=ExplorerMode.ADMIN)
        with pytest.raises(ArchiveSecurityError):
            session.scope()


class TestLoad:
    def test_out_of_scope_documents_dropped(self, public_session):
        assert sorted(_ids(public_session.documents)) == [100, 101, 102, 104]
        assert public_session.document_count == 4
        assert not public_session.needs_refresh

    def test_member_sees_only_its_tier(self, regular_member, executive_member, sample_categories, sample_documents):
        member = ExplorerSession(regular_member)
        member.load(sample_categories, sample_documents)
        assert _ids(member.documents) == [106]

        executive = ExplorerSession(executive_member)
        executive.load(sample_categories, sample_documents)
        assert _ids(executive.documents) == [103]

    def test_admin_sees_everything(self, admin, sample_categories, sample_documents):
        session = ExplorerSession(admin)
        session.load(sample_categories, sample_documents, count=40)
        assert len(session.documents) == len(sample_documents)
        assert session.document_count == 40

    def test_reload_keeps_surviving_expansion(self, public_session, sample_categories, sample_documents):
        public_session.on_toggle_expand(1)
        public_session.on_toggle_expand(3)
        remaining = [c for c in sample_categories if c.id not in (3, 5)]
        public_session.load(remaining, sample_documents)
        assert public_session.expansion.ids == {1}

    def test_reload_resets_vanished_selection(self, public_session, sample_categories, sample_documents):
        public_session.on_select_category(5)
        public_session.load([c for c in sample_categories if c.id != 5], sample_documents)
        assert public_session.selected_category is None

    def test_categories_are_copied(self, public_session):
        public_session.categories.clear()
        assert len(public_session.categories) == 6


class TestCallbacks:
    def test_all_files_view(self, public_session):
        assert _ids(public_session.visible_documents()) == [102, 104]
        assert [n.id for n in public_session.current_subfolders()] == [1, 2, 6]
        assert public_session.breadcrumb() == []

    def test_select_category(self, public_session):
        public_session.on_select_category(5)
        assert _ids(public_session.visible_documents()) == [100]
        assert [n.id for n in public_session.breadcrumb()] == [1, 3, 5]
        assert public_session.category_name(5) == "2023"

    def test_select_unknown_category(self, public_session):
        with pytest.raises(ArchiveValidationError):
            public_session.on_select_category(404)

    def test_select_clears_search(self, public_session):
        public_session.on_search_change("report")
        public_session.on_select_category(1)
        assert public_session.query.search == ""

    def test_search_filters_tree_and_list(self, public_session):
        public_session.on_search_change("report")
        assert public_session.needs_refresh
        assert sorted(_ids(public_session.tree_documents())) == [100, 102]
        assert _ids(public_session.visible_documents()) == [102]

    def test_file_type(self, public_session):
        public_session.on_file_type_change("image")
        assert _ids(public_session.tree_documents()) == [104]
        public_session.on_file_type_change("")
        assert public_session.query.file_type is None

    def test_unknown_file_type(self, public_session):
        with pytest.raises(ArchiveValidationError):
            public_session.on_file_type_change("spreadsheet")

    def test_sort_change(self, public_session):
        public_session.on_sort_change("name", False)
        assert _ids(public_session.visible_documents()) == [102, 104]
        public_session.on_sort_change("name", True)
        assert _ids(public_session.visible_documents()) == [104, 102]
        with pytest.raises(ArchiveValidationError):
            public_session.on_sort_change("size", True)

    def test_view_mode(self, public_session):
        public_session.on_view_mode_change("grid")
        assert public_session.view_mode == "grid"
        with pytest.raises(ArchiveValidationError):
            public_session.on_view_mode_change("table")

    def test_on_download(self, public_session):
        request = public_session.on_download(102)
        assert request.filename == "Reports Index.pdf"
        assert request.path == "/archive/102/download/"
        assert public_session.take_downloads() == [request]
        assert public_session.take_downloads() == []

    def test_download_outside_view(self, public_session):
        with pytest.raises(ArchiveValidationError):
            public_session.on_download(103)

    def test_toggle_does_not_change_selection(self, public_session):
        public_session.on_select_category(2)
        public_session.on_toggle_expand(1)
        assert public_session.selected_category == 2


class TestAuthChange:
    def test_public_explorer_stays_public(self, anonymous, executive_member):
        session = ExplorerSession(anonymous)
        session.needs_refresh = False
        session.on_auth_change(executive_member)
        assert session.mode is ExplorerMode.PUBLIC
        assert session.caller is executive_member
        assert session.needs_refresh

    def test_logout_from_member_view(self, regular_member, anonymous):
        session = ExplorerSession(regular_member)
        session.on_auth_change(anonymous)
        assert session.mode is ExplorerMode.PUBLIC
        assert session.store_params() == {"visibility": "public"}

    def test_member_switch_keeps_personal_view(self, regular_member, executive_member):
        session = ExplorerSession(regular_member, mode=ExplorerMode.PERSONAL)
        session.on_auth_change(executive_member)
        assert session.mode is ExplorerMode.PERSONAL
        assert session.title() == "Executive Resources"

    def test_admin_login_switches_to_admin(self, regular_member, admin):
        session = ExplorerSession(regular_member)
        session.on_auth_change(admin)
        assert session.mode is ExplorerMode.ADMIN

    def test_title(self, anonymous):
        assert ExplorerSession(anonymous).title() == "Resources"


class TestNotifications:
    def test_notify_error(self, anonymous):
        session = ExplorerSession(anonymous)
        session.notify_error(ArchiveNetworkError("store unreachable"))
        [note] = session.notifications
        assert note.level == "error"
        assert note.message == "store unreachable"
        assert note.retryable
        session.dismiss_notifications()
        assert session.notifications == []


class TestSearchDebouncer:
    def test_only_last_callback_runs(self):
        calls = []

        async def run():
            debouncer = SearchDebouncer(delay_ms=10)

            async def record(tag):
                calls.append(tag)

            debouncer.schedule(lambda: record("first"))
            task = debouncer.schedule(lambda: record("second"))
            await task

        asyncio.run(run())
        assert calls == ["second"]

    def test_cancel(self):
        calls = []

        async def run():
            debouncer = SearchDebouncer(delay_ms=10)

            async def record():
                calls.append("ran")

            debouncer.schedule(record)
            debouncer.cancel()
            await asyncio.sleep(0.03)

        asyncio.run(run())
        assert calls == []


class TestArchiveExplorerService:
    def test_refresh_loads_scoped_documents(self, anonymous, store_client, fake_store):
        service = ArchiveExplorerService(ExplorerSession(anonymous), store_client)
        assert asyncio.run(service.refresh()) is True
        assert sorted(_ids(service.session.documents)) == [100, 101, 102, 104]
        assert len(service.session.forest) == 6
        documents_request = next(r for r in fake_store.requests if r.url.path == "/api/archive/")
        assert documents_request.url.params["visibility"] == "public"

    def test_failed_refresh_keeps_previous_data(self, anonymous, store_client, fake_store):
        service = ArchiveExplorerService(ExplorerSession(anonymous), store_client)
        asyncio.run(service.refresh())
        fake_store.fail["GET /archive/"] = (503, {"detail": "Store is down"})

        assert asyncio.run(service.refresh()) is False
        assert len(service.session.documents) == 4
        [note] = service.session.notifications
        assert note.message == "Store is down"
        assert note.retryable

    def test_clearing_search_refetches_full_set(self, anonymous, store_client, fake_store):
        session = ExplorerSession(anonymous)
        service = ArchiveExplorerService(session, store_client)
        session.on_search_change("report")
        asyncio.run(service.refresh())
        assert sorted(_ids(session.documents)) == [100, 102]

        session.on_search_change("")
        assert session.needs_refresh
        asyncio.run(service.refresh())
        assert sorted(_ids(session.documents)) == [100, 101, 102, 104]
        last = [r for r in fake_store.requests if r.url.path == "/api/archive/"][-1]
        assert "search" not in last.url.params

    def test_file_type_change_refetches(self, anonymous, store_client):
        session = ExplorerSession(anonymous)
        service = ArchiveExplorerService(session, store_client)
        session.on_file_type_change("image")
        asyncio.run(service.refresh())
        assert _ids(session.documents) == [104]

        session.on_file_type_change("")
        asyncio.run(service.refresh())
        assert len(session.documents) == 4

    def test_download(self, anonymous, store_client):
        service = ArchiveExplorerService(ExplorerSession(anonymous), store_client)
        asyncio.run(service.refresh())
        assert asyncio.run(service.download(102)) == b"%PDF-1.4 fake"
        assert service.session.take_downloads() == []

    def test_failed_download_notifies(self, anonymous, store_client, fake_store):
        service = ArchiveExplorerService(ExplorerSession(anonymous), store_client)
        asyncio.run(service.refresh())
        rows_before = service.session.render_rows()
        fake_store.fail["GET /archive/102/download/"] = (404, {"detail": "Not found."})

        assert asyncio.run(service.download(102)) is None
        [note] = service.session.notifications
        assert note.message == "Failed to download document. Please try again."
        assert note.retryable
        assert service.session.render_rows() == rows_before

