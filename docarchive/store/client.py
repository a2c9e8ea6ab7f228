"""
docarchive Store Client — async HTTP access to the archive backing store.

Lifecycle (per call):
    1. Build the request (path, query params, JSON or multipart body)
    2. Execute via a pooled httpx.AsyncClient
    3. Retry network errors and 5xx responses with backoff
    4. Map non-2xx responses to ArchiveStoreError / ArchiveMutationRejected
       carrying the store's own message
    5. Log the request to the store/execution event log

Response shapes:
    GET categories → {results: [...]} or a bare list
    GET documents  → {results: [...], count: N}
    GET download   → binary body
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from docarchive.documents.models import (
    Category,
    Document,
    Tag,
    Visibility,
    parse_categories,
    parse_documents,
)
from docarchive.engine.config import StoreConfig
from docarchive.engine.errors import (
    ArchiveMutationRejected,
    ArchiveNetworkError,
    ArchiveStoreError,
    extract_error_message,
)
from docarchive.engine.logging import log, log_store_request
from docarchive.security.permissions import ExplorerMode, visibility_resolver

logger = logging.getLogger("docarchive.store.client")


@dataclass
class DocumentPage:
    results: List[Document]
    count: int


@dataclass
class UploadRequest:
    """Form data for ``POST document``; category pre-filled when uploading into a folder."""

    title_primary: str = ""
    title_secondary: str = ""
    description_primary: str = ""
    description_secondary: str = ""
    category_id: Optional[int] = None
    visibility: Visibility = Visibility.PUBLIC
    tag_ids: List[int] = field(default_factory=list)
    date: Optional[str] = None
    author: str = ""

    def form_fields(self) -> Dict[str, Any]:
        """Multipart fields; ``tag_ids`` repeats once per tag."""
        fields: Dict[str, Any] = {
            "title_en": self.title_primary,
            "title_am": self.title_secondary,
            "description_en": self.description_primary,
            "description_am": self.description_secondary,
        }
        if self.category_id is not None:
            fields["category_id"] = str(self.category_id)
        if self.tag_ids:
            fields["tag_ids"] = [str(tag_id) for tag_id in self.tag_ids]
        fields["visibility"] = Visibility(self.visibility).value
        if self.date:
            fields["date"] = self.date
        fields["author"] = self.author
        return fields


def _results(payload: Any) -> List[Dict[str, Any]]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        return payload.get("results") or []
    return []


class ArchiveStoreClient:
    """
    Backing store gateway. One pooled httpx.AsyncClient per instance,
    closed with ``aclose()`` or ``async with``.
    """

    def __init__(
        self,
        config: Optional[StoreConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        token: Optional[str] = None,
    ):
        self._config = config or StoreConfig()
        self._transport = transport
        self._token = token if token is not None else self._config.token
        self._client: Optional[httpx.AsyncClient] = None

    # -----------------------------------------------------------------------
    # HTTP Client (httpx)
    # -----------------------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._client = httpx.AsyncClient(
                base_url=self._config.base_url.rstrip("/"),
                headers=headers,
                timeout=httpx.Timeout(self._config.timeout, connect=self._config.connect_timeout),
                limits=httpx.Limits(
                    max_connections=self._config.max_connections,
                    max_keepalive_connections=self._config.max_keepalive,
                ),
                transport=self._transport,
                follow_redirects=True,
            )
            logger.info(f"Created store client for {self._config.base_url}")
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ArchiveStoreClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _calc_delay(self, attempt: int) -> float:
        retry = self._config.retry
        if retry.backoff == "exponential":
            return retry.delay * (2 ** attempt)
        if retry.backoff == "linear":
            return retry.delay * (attempt + 1)
        return retry.delay

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: Optional[str] = None,
        record_id: Optional[int] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Execute one request with retry. Mutations (``operation`` set) are not
        retried on 5xx, and only retried on connect failures where the request
        never reached the store.
        """
        client = self._get_client()
        max_retries = self._config.retry.count
        start = time.monotonic()
        last_error: Optional[Exception] = None
        attempts = 0

        for attempt in range(max_retries + 1):
            attempts = attempt + 1
            try:
                response = await client.request(method, path, **kwargs)
            except httpx.TransportError as e:
                last_error = e
                if operation is not None and not isinstance(e, (httpx.ConnectError, httpx.ConnectTimeout)):
                    break
                if attempt < max_retries:
                    delay = self._calc_delay(attempt)
                    logger.warning(
                        f"Store {method} {path} failed: {e}, retrying in {delay}s "
                        f"(attempt {attempt + 1}/{max_retries})"
                    )
                    await asyncio.sleep(delay)
                    continue
                break

            status = response.status_code
            if 200 <= status < 300:
                log(log_store_request(method, path, status, (time.monotonic() - start) * 1000, attempt + 1))
                return response

            if status >= 500 and operation is None and attempt < max_retries:
                delay = self._calc_delay(attempt)
                logger.info(f"Store {method} {path} got {status}, retrying in {delay}s")
                await asyncio.sleep(delay)
                continue

            body = self._body(response)
            message = extract_error_message(status, body)
            log(log_store_request(
                method, path, status, (time.monotonic() - start) * 1000, attempt + 1, error=message,
            ))
            if operation is not None:
                raise ArchiveMutationRejected(
                    message,
                    object_ref=f"store.{operation}",
                    status_code=status,
                    response_body=body,
                    path=path,
                    operation=operation,
                    record_id=record_id,
                )
            raise ArchiveStoreError(
                message, object_ref=f"store.{method.lower()}", status_code=status,
                response_body=body, path=path,
            )

        log(log_store_request(
            method, path, 0, (time.monotonic() - start) * 1000, attempts, error=str(last_error),
        ))
        raise ArchiveNetworkError(
            f"Could not reach the archive store ({method} {path}): {last_error}",
            object_ref=f"store.{method.lower()}",
            attempts=attempts,
        )

    @staticmethod
    def _body(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    # -----------------------------------------------------------------------
    # Read endpoints
    # -----------------------------------------------------------------------

    async def list_categories(self, admin: bool = False) -> List[Category]:
        path = "/admin/archive/categories/" if admin else "/archive/categories/"
        response = await self._request("GET", path)
        return parse_categories(_results(response.json()))

    async def list_tags(self) -> List[Tag]:
        response = await self._request("GET", "/archive/tags/")
        return [Tag(id=int(t["id"]), name=str(t.get("name", ""))) for t in _results(response.json())]

    async def list_documents(
        self,
        mode: ExplorerMode,
        params: Optional[Dict[str, Any]] = None,
    ) -> DocumentPage:
        path = visibility_resolver.list_path(mode)
        clean = {k: v for k, v in (params or {}).items() if v not in (None, "")}
        if mode is ExplorerMode.PERSONAL:
            # The store scopes personal resources itself
            clean.pop("visibility", None)
        response = await self._request("GET", path, params=clean)
        payload = response.json()
        results = parse_documents(_results(payload))
        count = payload.get("count", len(results)) if isinstance(payload, dict) else len(results)
        return DocumentPage(results=results, count=count)

    async def download(self, document_id: int, mode: ExplorerMode = ExplorerMode.PUBLIC) -> bytes:
        path = visibility_resolver.download_path(mode, document_id)
        response = await self._request("GET", path)
        return response.content

    # -----------------------------------------------------------------------
    # Admin mutations
    # -----------------------------------------------------------------------

    async def create_category(self, data: Dict[str, Any]) -> Category:
        response = await self._request(
            "POST", "/admin/archive/categories/", operation="create_category", json=data,
        )
        return parse_categories([response.json()])[0]

    async def delete_category(self, category_id: int) -> None:
        await self._request(
            "DELETE", f"/admin/archive/categories/{category_id}/",
            operation="delete_category", record_id=category_id,
        )

    async def update_document(
        self,
        document_id: int,
        category_id: Optional[int],
        visibility: Visibility,
    ) -> Document:
        """PATCH category and visibility; ``None`` explicitly clears the category."""
        payload = {"category_id": category_id, "visibility": Visibility(visibility).value}
        response = await self._request(
            "PATCH", f"/admin/archive/{document_id}/",
            operation="update_document", record_id=document_id, json=payload,
        )
        return parse_documents([response.json()])[0]

    async def delete_document(self, document_id: int) -> None:
        await self._request(
            "DELETE", f"/admin/archive/{document_id}/",
            operation="delete_document", record_id=document_id,
        )

    async def upload_document(
        self,
        request: UploadRequest,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> Document:
        response = await self._request(
            "POST", "/admin/archive/",
            operation="upload_document",
            data=request.form_fields(),
            files={"file": (filename, content, content_type)},
        )
        return parse_documents([response.json()])[0]

    async def create_tag(self, name: str) -> Tag:
        response = await self._request("POST", "/admin/archive/tags/", operation="create_tag", json={"name": name})
        body = response.json()
        return Tag(id=int(body["id"]), name=body.get("name", name))

    async def update_tag(self, tag_id: int, name: str) -> Tag:
        response = await self._request(
            "PUT", f"/admin/archive/tags/{tag_id}/", operation="update_tag", record_id=tag_id, json={"name": name},
        )
        body = response.json()
        return Tag(id=int(body["id"]), name=body.get("name", name))

    async def delete_tag(self, tag_id: int) -> None:
        await self._request("DELETE", f"/admin/archive/tags/{tag_id}/", operation="delete_tag", record_id=tag_id)

    def __repr__(self) -> str:
        return f"<ArchiveStoreClient base_url='{self._config.base_url}'>"


async def fetch_archive(
    client: ArchiveStoreClient,
    mode: ExplorerMode,
    params: Optional[Dict[str, Any]] = None,
) -> Tuple[List[Category], DocumentPage]:
    """Fetch categories and documents concurrently."""
    categories, page = await asyncio.gather(
        client.list_categories(admin=mode is ExplorerMode.ADMIN),
        client.list_documents(mode, params),
    )
    return categories, page
