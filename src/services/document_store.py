"""Job document persistence backed by the Firestore REST API.

`FirestoreDocumentStore` issues PATCH requests with an update mask so a
partial record only touches the fields it names. A fresh access token is
acquired for every write. `InMemoryDocumentStore` mirrors the same merge
semantics for tests and local development.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from typing import Any, Dict, List, Mapping
from urllib.parse import quote

import httpx

from src.errors import TransportError, WriteError
from src.utils.logging_utils import structured_log

from .document_encoder import decode_fields, encode_fields
from .interfaces import DocumentStore, MetricsClient
from .metrics import NullMetrics
from .token_provider import ServiceCredential, TokenProvider

_LOG = logging.getLogger("document_store")

DEFAULT_FIRESTORE_BASE_URL = "https://firestore.googleapis.com/v1"
_SIMPLE_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z_0-9]*$")


def field_path(name: str) -> str:
    """Quote a top-level field name for use in an update mask."""
    if _SIMPLE_FIELD_RE.match(name):
        return name
    escaped = name.replace("\\", "\\\\").replace("`", "\\`")
    return f"`{escaped}`"


def build_document_url(
    *,
    base_url: str,
    project_id: str,
    database: str,
    collection: str,
    job_id: str,
) -> str:
    return (
        f"{base_url.rstrip('/')}/projects/{project_id}/databases/{database}"
        f"/documents/{collection}/{quote(job_id, safe='')}"
    )


class FirestoreDocumentStore(DocumentStore):
    """Authenticated partial-field upserts against Firestore."""

    def __init__(
        self,
        *,
        project_id: str,
        collection: str,
        credential: ServiceCredential,
        token_provider: TokenProvider,
        database: str = "(default)",
        base_url: str = DEFAULT_FIRESTORE_BASE_URL,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
        metrics: MetricsClient | None = None,
    ) -> None:
        self.project_id = project_id
        self.collection = collection
        self.database = database
        self.base_url = base_url
        self._credential = credential
        self._token_provider = token_provider
        self._http_client = http_client
        self._timeout = timeout
        self.metrics = metrics or NullMetrics()

    def document_url(self, job_id: str) -> str:
        return build_document_url(
            base_url=self.base_url,
            project_id=self.project_id,
            database=self.database,
            collection=self.collection,
            job_id=job_id,
        )

    async def upsert(self, job_id: str, record: Mapping[str, Any]) -> None:
        body = {"fields": encode_fields(record)}
        token = await self._token_provider.acquire_token(self._credential)
        params = [("updateMask.fieldPaths", field_path(str(name))) for name in record]
        headers = {
            "Authorization": token.authorization_header(),
            "Content-Type": "application/json",
        }
        url = self.document_url(job_id)
        try:
            if self._http_client is not None:
                response = await self._http_client.patch(
                    url, params=params, json=body, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.patch(url, params=params, json=body, headers=headers)
        except httpx.RequestError as exc:
            self.metrics.increment("document_writes_total", stage="persist", outcome="transport_error")
            raise TransportError(f"Document store unreachable: {exc}") from exc

        if not response.is_success:
            try:
                detail: Any = response.json()
            except ValueError:
                detail = response.text
            self.metrics.increment("document_writes_total", stage="persist", outcome="rejected")
            raise WriteError(response.status_code, detail)

        self.metrics.increment("document_writes_total", stage="persist", outcome="ok")
        structured_log(
            _LOG,
            logging.INFO,
            "document_saved",
            job_id=job_id,
            collection=self.collection,
            status=record.get("status"),
            fields=sorted(str(name) for name in record),
        )


class InMemoryDocumentStore(DocumentStore):
    """Merging in-memory store; keeps encoded fields and a write history."""

    def __init__(self) -> None:
        self._documents: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.writes: Dict[str, List[Dict[str, Any]]] = defaultdict(list)

    async def upsert(self, job_id: str, record: Mapping[str, Any]) -> None:
        fields = encode_fields(record)
        self._documents.setdefault(job_id, {}).update(fields)
        self.writes[job_id].append(decode_fields(fields))

    def get(self, job_id: str) -> Dict[str, Any] | None:
        fields = self._documents.get(job_id)
        return None if fields is None else decode_fields(fields)

    def raw(self, job_id: str) -> Dict[str, Dict[str, Any]] | None:
        fields = self._documents.get(job_id)
        return None if fields is None else dict(fields)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._documents

    def __len__(self) -> int:
        return len(self._documents)


__all__ = [
    "DEFAULT_FIRESTORE_BASE_URL",
    "FirestoreDocumentStore",
    "InMemoryDocumentStore",
    "build_document_url",
    "field_path",
]
