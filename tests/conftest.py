"""
docarchive Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest

from docarchive.documents.models import Category, Document, FileType, Visibility, parse_datetime
from docarchive.engine.context import CallerContext


# ---------------------------------------------------------------------------
# Global singletons — reset between tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_globals():
    """Reset the config and file-logger singletons between tests."""
    import docarchive.engine.config as cfg_mod
    import docarchive.engine.logging as log_mod

    cfg_mod._config = None
    log_mod._file_logger = None
    yield
    cfg_mod._config = None
    log_mod._file_logger = None


@pytest.fixture
def file_logger(tmp_path):
    """Initialize structured event logs in a temp directory."""
    from docarchive.engine.logging import init_logging

    return init_logging(str(tmp_path / "logs"))


# ---------------------------------------------------------------------------
# Record builders
# ---------------------------------------------------------------------------

def make_category(
    id: int,
    name: str,
    parent: Optional[int] = None,
    order: int = 0,
    name_secondary: Optional[str] = None,
) -> Category:
    return Category(id=id, name_primary=name, name_secondary=name_secondary, parent=parent, order=order)


def make_document(
    id: int,
    title: str,
    category: Optional[int] = None,
    visibility: str = "public",
    file_type: str = "pdf",
    created_at: Optional[str] = "2024-01-01T00:00:00Z",
    **extra: Any,
) -> Document:
    return Document(
        id=id,
        title_primary=title,
        category=category,
        visibility=Visibility(visibility),
        file_type=FileType(file_type),
        created_at=parse_datetime(created_at),
        **extra,
    )


@pytest.fixture
def category():
    return make_category


@pytest.fixture
def document():
    return make_document


# ---------------------------------------------------------------------------
# Sample archive
# ---------------------------------------------------------------------------

@pytest.fixture
def bylaws_archive():
    """Two-level example: Bylaws/2024 with one document in each folder."""
    categories = [
        make_category(1, "Bylaws"),
        make_category(2, "2024", parent=1),
    ]
    documents = [
        make_document(10, "Charter", category=1),
        make_document(11, "AGM Minutes", category=2),
    ]
    return categories, documents


@pytest.fixture
def sample_categories() -> List[Category]:
    """
    Reports (1)
    ├── Annual (3)
    │   └── 2023 (5)
    └── Quarterly (4)
    Minutes (2)
    Policies (6)  — leaf root
    """
    return [
        make_category(5, "2023", parent=3),
        make_category(2, "Minutes", order=2),
        make_category(4, "Quarterly", parent=1, order=1),
        make_category(1, "Reports", order=1),
        make_category(3, "Annual", parent=1, order=2),
        make_category(6, "Policies", order=0),
    ]


@pytest.fixture
def sample_documents() -> List[Document]:
    return [
        make_document(100, "Annual Report 2023", category=5, created_at="2024-02-01T10:00:00Z"),
        make_document(101, "Q1 Summary", category=4, file_type="doc", created_at="2023-04-15T09:00:00Z"),
        make_document(102, "Reports Index", category=1, created_at="2022-01-01T00:00:00Z"),
        make_document(103, "Board Minutes", category=2, visibility="executive", created_at="2024-03-01T00:00:00Z"),
        make_document(104, "Welcome Pack", category=None, file_type="image", created_at="2021-06-01T00:00:00Z"),
        make_document(105, "Assembly Agenda", category=2, visibility="general_assembly", created_at="2024-01-10T00:00:00Z"),
        make_document(106, "Member Handbook", category=6, visibility="member", created_at="not-a-date"),
    ]


# ---------------------------------------------------------------------------
# Callers
# ---------------------------------------------------------------------------

@pytest.fixture
def anonymous() -> CallerContext:
    return CallerContext.anonymous()


@pytest.fixture
def regular_member() -> CallerContext:
    return CallerContext(authenticated=True, role="member", member_type="regular", user_id=7)


@pytest.fixture
def executive_member() -> CallerContext:
    return CallerContext(authenticated=True, role="member", member_type="executive", user_id=8)


@pytest.fixture
def admin() -> CallerContext:
    return CallerContext(authenticated=True, role="admin", user_id=1, username="admin")


# ---------------------------------------------------------------------------
# Store fakes
# ---------------------------------------------------------------------------

def wire_category(cat: Category) -> Dict[str, Any]:
    return {
        "id": cat.id,
        "name_en": cat.name_primary,
        "name_am": cat.name_secondary,
        "parent": cat.parent,
        "order": cat.order,
    }


def wire_document(doc: Document) -> Dict[str, Any]:
    return {
        "id": doc.id,
        "title_en": doc.title_primary,
        "title_am": doc.title_secondary,
        "file_type": doc.file_type.value,
        "file_size": doc.file_size,
        "category_id": doc.category,
        "visibility": doc.visibility.value,
        "created_at": doc.created_at.isoformat() if doc.created_at else None,
        "author": doc.author,
    }


class FakeStore:
    """
    In-memory backing store served through httpx.MockTransport.

    Records every request; ``fail`` maps "METHOD path" to (status, body).
    """

    def __init__(self, categories: List[Category], documents: List[Document]):
        self.categories = [wire_category(c) for c in categories]
        self.documents = [wire_document(d) for d in documents]
        self.requests: List[httpx.Request] = []
        self.fail: Dict[str, Any] = {}
        self.tags = [{"id": 1, "name": "finance"}]
        self.next_id = 1000

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.replace("/api", "", 1)
        key = f"{request.method} {path}"
        if key in self.fail:
            status, body = self.fail[key]
            return httpx.Response(status, json=body)

        if request.method == "GET" and path.endswith("/download/"):
            return httpx.Response(200, content=b"%PDF-1.4 fake")
        if request.method == "GET" and path.endswith("categories/"):
            return httpx.Response(200, json={"results": self.categories})
        if request.method == "GET" and path.endswith("tags/"):
            return httpx.Response(200, json={"results": self.tags})
        if request.method == "GET":
            params = request.url.params
            visibility = params.get("visibility")
            search = params.get("search", "").casefold()
            file_type = params.get("file_type")
            docs = [
                d for d in self.documents
                if (visibility is None or d["visibility"] == visibility)
                and search in d.get("title_en", "").casefold()
                and (file_type is None or d.get("file_type") == file_type)
            ]
            return httpx.Response(200, json={"results": docs, "count": len(docs)})

        if request.method == "POST" and path == "/admin/archive/tags/":
            body = json.loads(request.content)
            self.next_id += 1
            record = {"id": self.next_id, "name": body["name"]}
            self.tags.append(record)
            return httpx.Response(201, json=record)
        if path.startswith("/admin/archive/tags/"):
            tag_id = int(path.rstrip("/").split("/")[-1])
            tag = next((t for t in self.tags if t["id"] == tag_id), None)
            if tag is None:
                return httpx.Response(404, json={"detail": "Not found."})
            if request.method == "DELETE":
                self.tags.remove(tag)
                return httpx.Response(204)
            tag.update(json.loads(request.content))
            return httpx.Response(200, json=tag)
        if request.method == "POST" and path == "/admin/archive/categories/":
            body = json.loads(request.content)
            self.next_id += 1
            record = {"id": self.next_id, **body}
            self.categories.append(record)
            return httpx.Response(201, json=record)
        if request.method == "DELETE" and path.startswith("/admin/archive/categories/"):
            cat_id = int(path.rstrip("/").split("/")[-1])
            self.categories = [c for c in self.categories if c["id"] != cat_id]
            return httpx.Response(204)
        if request.method == "PATCH":
            doc_id = int(path.rstrip("/").split("/")[-1])
            body = json.loads(request.content)
            for doc in self.documents:
                if doc["id"] == doc_id:
                    doc.update(body)
                    return httpx.Response(200, json=doc)
            return httpx.Response(404, json={"detail": "Not found."})
        if request.method == "DELETE" and path.startswith("/admin/archive/"):
            doc_id = int(path.rstrip("/").split("/")[-1])
            self.documents = [d for d in self.documents if d["id"] != doc_id]
            return httpx.Response(204)
        if request.method == "POST" and path == "/admin/archive/":
            self.next_id += 1
            record = {"id": self.next_id, "title_en": "Uploaded", "file_type": "pdf", "visibility": "public"}
            self.documents.append(record)
            return httpx.Response(201, json=record)
        return httpx.Response(404, json={"detail": "Not found."})


@pytest.fixture
def fake_store(sample_categories, sample_documents) -> FakeStore:
    return FakeStore(sample_categories, sample_documents)


@pytest.fixture
def store_client(fake_store):
    """ArchiveStoreClient wired to the fake store with instant retries."""
    from docarchive.engine.config import RetryConfig, StoreConfig
    from docarchive.store.client import ArchiveStoreClient

    config = StoreConfig(base_url="http://store.test/api", retry=RetryConfig(count=2, delay=0.0))
    return ArchiveStoreClient(config, transport=fake_store.transport())


@pytest.fixture
def json_exports(tmp_path, sample_categories, sample_documents) -> Dict[str, Path]:
    """Local JSON exports of the sample archive, in the store's wire format."""
    categories = tmp_path / "categories.json"
    documents = tmp_path / "documents.json"
    categories.write_text(json.dumps({"results": [wire_category(c) for c in sample_categories]}), encoding="utf-8")
    documents.write_text(json.dumps([wire_document(d) for d in sample_documents]), encoding="utf-8")
    return {"categories": categories, "documents": documents}
