"""Firestore REST backend built on aiohttp.

Implements the document backend primitives against
``https://firestore.googleapis.com/v1``.  Writes go through
``documents:commit`` so ``SERVER_TIMESTAMP`` fields can be expressed as
``REQUEST_TIME`` field transforms.  The REST surface has no streaming
listener, so :meth:`FirestoreRestBackend.listen` polls the collection and
emits the full set whenever a document is added, removed or changed.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime
from typing import Any
from urllib.parse import unquote

import aiohttp

from herdstore.backends.base import SERVER_TIMESTAMP, DocumentSnapshot, SnapshotListener, split_path
from herdstore.config import StoreConfig
from herdstore.exceptions import HerdConfigError, HerdTransportError

_logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://firestore.googleapis.com"

_PAGE_SIZE = 300

# Firestore timestamps carry up to nanosecond precision; datetime keeps microseconds.
_FRACTION_RE = re.compile(r"\.(\d{6})\d+")

TokenProvider = Callable[[], Awaitable[str | None]]


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(_FRACTION_RE.sub(r".\1", value))


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a Python value into the Firestore typed value format."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": _format_timestamp(value)}
    if isinstance(value, bytes):
        return {"bytesValue": base64.b64encode(value).decode("ascii")}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(item) for item in value]}}
    raise TypeError(f"Cannot encode {type(value).__name__} as a Firestore value")


def encode_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    return {key: encode_value(value) for key, value in data.items()}


def decode_value(value: Mapping[str, Any]) -> Any:
    """Decode one Firestore typed value.

    Unknown value kinds decode to ``None`` so the record layer decides
    whether the field is acceptable.
    """
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return _parse_timestamp(value["timestampValue"])
    if "bytesValue" in value:
        return base64.b64decode(value["bytesValue"])
    if "referenceValue" in value:
        return value["referenceValue"]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(item) for item in value["arrayValue"].get("values", [])]
    return None


def decode_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


class _PollingRegistration:
    def __init__(self, task: asyncio.Task[None]) -> None:
        self._task = task

    def remove(self) -> None:
        self._task.cancel()


class FirestoreRestBackend:
    """Document backend talking to the Firestore REST API.

    Usage::

        async with FirestoreRestBackend(project_id="herdworks", token_provider=get_token) as backend:
            store = RemoteCollectionStore(BreedingEvent, backend)
    """

    def __init__(
        self,
        *,
        project_id: str,
        database: str = "(default)",
        base_url: str = DEFAULT_BASE_URL,
        token_provider: TokenProvider | None = None,
        session: aiohttp.ClientSession | None = None,
        poll_interval: float = 2.0,
        timeout: float = 10.0,
    ) -> None:
        if not project_id:
            raise HerdConfigError("Firestore backend requires a project_id")
        self._root = f"projects/{project_id}/databases/{database}/documents"
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._external_session = session is not None
        self._http = session
        self._poll_interval = poll_interval
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._polls: set[asyncio.Task[None]] = set()

    @classmethod
    def from_config(
        cls,
        config: StoreConfig,
        *,
        token_provider: TokenProvider | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> FirestoreRestBackend:
        if not config.project_id:
            raise HerdConfigError("StoreConfig.project_id is required for the remote backend")
        return cls(
            project_id=config.project_id,
            database=config.database,
            base_url=config.base_url,
            token_provider=token_provider,
            session=session,
            poll_interval=config.poll_interval,
            timeout=config.http_timeout,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> FirestoreRestBackend:
        self._require_session()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        for task in list(self._polls):
            task.cancel()
        self._polls.clear()
        if not self._external_session and self._http is not None:
            await self._http.close()
        self._http = None

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self._http

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _url(self, suffix: str) -> str:
        return f"{self._base_url}/v1/{self._root}{suffix}"

    async def _headers(self) -> dict[str, str]:
        headers = {"content-type": "application/json; charset=UTF-8"}
        if self._token_provider is not None:
            token = await self._token_provider()
            if token:
                headers["authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        path: str,
        *,
        body: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
        allow_missing: bool = False,
    ) -> dict[str, Any] | None:
        http = self._require_session()
        try:
            headers = await self._headers()
        except Exception as exc:
            raise HerdTransportError(f"Token provider failed for {method} {path}: {exc}", path=path) from exc
        _logger.debug("%s %s", method, url)

        try:
            async with http.request(
                method,
                url,
                data=json.dumps(body) if body is not None else None,
                params=params,
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if resp.status == 404 and allow_missing:
                    return None
                if resp.status != 200:
                    raise HerdTransportError(
                        f"HTTP {resp.status} for {method} {path}: {text[:200]}",
                        status_code=resp.status,
                        path=path,
                    )
        except HerdTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise HerdTransportError(f"{method} {path} failed: {exc}", path=path) from exc

        if not text:
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise HerdTransportError(f"Invalid JSON for {method} {path}: {text[:200]}", path=path) from exc
        if not isinstance(payload, dict):
            raise HerdTransportError(f"Unexpected response shape for {method} {path}", path=path)
        return payload

    def _snapshot(self, raw: Mapping[str, Any]) -> DocumentSnapshot:
        name = str(raw.get("name", ""))
        path = name.split("/documents/", 1)[-1]
        _, document_id = split_path(path)
        try:
            data = decode_fields(raw.get("fields", {}))
        except (ValueError, TypeError, AttributeError) as exc:
            # An empty document fails record decoding and is skipped by the store.
            _logger.warning("Cannot decode fields of %s: %s", path, exc)
            data = {}
        return DocumentSnapshot(id=unquote(document_id), path=path, exists=True, data=data)

    async def _list(self, collection_path: str) -> tuple[list[DocumentSnapshot], tuple[tuple[str, str], ...]]:
        documents: list[DocumentSnapshot] = []
        versions: list[tuple[str, str]] = []
        page_token: str | None = None
        while True:
            params = {"pageSize": str(_PAGE_SIZE)}
            if page_token:
                params["pageToken"] = page_token
            payload = await self._request("GET", self._url(f"/{collection_path}"), collection_path, params=params)
            assert payload is not None  # noqa: S101
            for raw in payload.get("documents", []):
                snapshot = self._snapshot(raw)
                documents.append(snapshot)
                versions.append((snapshot.path, str(raw.get("updateTime", ""))))
            page_token = payload.get("nextPageToken")
            if not page_token:
                break
        return documents, tuple(sorted(versions))

    # ------------------------------------------------------------------
    # DocumentBackend
    # ------------------------------------------------------------------

    async def get_document(self, path: str) -> DocumentSnapshot:
        payload = await self._request("GET", self._url(f"/{path}"), path, allow_missing=True)
        if payload is None:
            _, document_id = split_path(path)
            return DocumentSnapshot(id=unquote(document_id), path=path, exists=False)
        return self._snapshot(payload)

    async def get_documents(self, collection_path: str) -> list[DocumentSnapshot]:
        documents, _ = await self._list(collection_path)
        return documents

    async def set_document(self, path: str, data: Mapping[str, Any]) -> None:
        fields = {key: value for key, value in data.items() if value is not SERVER_TIMESTAMP}
        write: dict[str, Any] = {
            "update": {"name": f"{self._root}/{path}", "fields": encode_fields(fields)},
        }
        transforms = [
            {"fieldPath": key, "setToServerValue": "REQUEST_TIME"}
            for key, value in data.items()
            if value is SERVER_TIMESTAMP
        ]
        if transforms:
            write["updateTransforms"] = transforms
        await self._request("POST", self._url(":commit"), path, body={"writes": [write]})

    async def delete_document(self, path: str) -> None:
        await self._request("DELETE", self._url(f"/{path}"), path, allow_missing=True)

    def listen(self, collection_path: str, on_snapshot: SnapshotListener) -> _PollingRegistration:
        task = asyncio.get_running_loop().create_task(self._poll(collection_path, on_snapshot))
        self._polls.add(task)
        task.add_done_callback(self._polls.discard)
        return _PollingRegistration(task)

    async def _poll(self, collection_path: str, on_snapshot: SnapshotListener) -> None:
        last_versions: tuple[tuple[str, str], ...] | None = None
        while True:
            try:
                documents, versions = await self._list(collection_path)
            except HerdTransportError as exc:
                on_snapshot(None, exc)
                return
            except Exception as exc:
                _logger.exception("Polling %s failed", collection_path)
                on_snapshot(None, HerdTransportError(f"LISTEN {collection_path} failed: {exc}", path=collection_path))
                return
            if versions != last_versions:
                last_versions = versions
                on_snapshot(documents, None)
            await asyncio.sleep(self._poll_interval)
