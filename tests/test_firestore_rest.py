"""Tests for the Firestore REST backend against a scripted HTTP session."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from typing import Any

import aiohttp
import pytest

from herdstore.backends.base import SERVER_TIMESTAMP, DocumentSnapshot
from herdstore.backends.firestore_rest import FirestoreRestBackend, decode_value, encode_value
from herdstore.config import StoreConfig
from herdstore.exceptions import HerdConfigError, HerdTransportError

ROOT = "projects/demo/databases/(default)/documents"
COLLECTION = "users/u1/farms/f1/lambingSeasonGroups/g1/lambingRecords"
NOW = datetime(2026, 1, 1, tzinfo=UTC)


class _FakeResponse:
    def __init__(self, status: int, body: Any) -> None:
        self.status = status
        self._body = body

    async def text(self) -> str:
        if isinstance(self._body, str):
            return self._body
        return json.dumps(self._body)

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class _FakeSession:
    """Replays queued responses and records every request."""

    def __init__(self, *responses: _FakeResponse | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0) if self.responses else _FakeResponse(200, {})
        if isinstance(response, Exception):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


def _document(doc_id: str, update_time: str = "2026-01-01T00:00:00Z", **fields: Any) -> dict[str, Any]:
    return {
        "name": f"{ROOT}/{COLLECTION}/{doc_id}",
        "fields": {key: encode_value(value) for key, value in fields.items()},
        "updateTime": update_time,
    }


def _backend(session: _FakeSession, **kwargs: Any) -> FirestoreRestBackend:
    return FirestoreRestBackend(project_id="demo", session=session, **kwargs)  # type: ignore[arg-type]


# ------------------------------------------------------------------
# Value codec
# ------------------------------------------------------------------


class TestValueCodec:
    def test_encode_scalars(self) -> None:
        assert encode_value(None) == {"nullValue": None}
        assert encode_value(True) == {"booleanValue": True}
        assert encode_value(7) == {"integerValue": "7"}
        assert encode_value(1.5) == {"doubleValue": 1.5}
        assert encode_value("x") == {"stringValue": "x"}
        assert encode_value(NOW) == {"timestampValue": "2026-01-01T00:00:00Z"}

    def test_encode_nested(self) -> None:
        assert encode_value({"a": [1]}) == {
            "mapValue": {"fields": {"a": {"arrayValue": {"values": [{"integerValue": "1"}]}}}}
        }

    def test_encode_rejects_unknown_types(self) -> None:
        with pytest.raises(TypeError):
            encode_value(object())

    def test_decode_truncates_nanoseconds(self) -> None:
        decoded = decode_value({"timestampValue": "2026-01-01T00:00:00.123456789Z"})
        assert decoded == NOW.replace(microsecond=123456)

    def test_decode_unknown_kind_is_none(self) -> None:
        assert decode_value({"somethingNew": 1}) is None

    def test_decode_nested(self) -> None:
        value = {"mapValue": {"fields": {"n": {"integerValue": "3"}, "tags": {"arrayValue": {}}}}}
        assert decode_value(value) == {"n": 3, "tags": []}


# ------------------------------------------------------------------
# Construction
# ------------------------------------------------------------------


def test_project_id_is_required() -> None:
    with pytest.raises(HerdConfigError):
        FirestoreRestBackend(project_id="")
    with pytest.raises(HerdConfigError):
        FirestoreRestBackend.from_config(StoreConfig(backend="remote"))


@pytest.mark.asyncio
async def test_from_config_uses_base_url_and_database() -> None:
    session = _FakeSession(_FakeResponse(404, {"error": {}}))
    config = StoreConfig(
        backend="remote", project_id="p", database="herd", base_url="http://localhost:8080/"
    )
    backend = FirestoreRestBackend.from_config(config, session=session)  # type: ignore[arg-type]

    await backend.get_document(f"{COLLECTION}/x")

    assert session.requests[0]["url"] == f"http://localhost:8080/v1/projects/p/databases/herd/documents/{COLLECTION}/x"


# ------------------------------------------------------------------
# Reads
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_document_decodes_fields() -> None:
    session = _FakeSession(_FakeResponse(200, _document("r1", lambsBorn=12, createdAt=NOW)))
    backend = _backend(session)

    snapshot = await backend.get_document(f"{COLLECTION}/r1")

    assert snapshot == DocumentSnapshot(
        id="r1", path=f"{COLLECTION}/r1", exists=True, data={"lambsBorn": 12, "createdAt": NOW}
    )
    assert session.requests[0]["method"] == "GET"


@pytest.mark.asyncio
async def test_get_missing_document() -> None:
    backend = _backend(_FakeSession(_FakeResponse(404, {"error": {"code": 404}})))

    snapshot = await backend.get_document(f"{COLLECTION}/gone")

    assert snapshot.exists is False
    assert snapshot.id == "gone"


@pytest.mark.asyncio
async def test_get_documents_follows_page_tokens() -> None:
    session = _FakeSession(
        _FakeResponse(200, {"documents": [_document("a")], "nextPageToken": "t1"}),
        _FakeResponse(200, {"documents": [_document("b")]}),
    )
    backend = _backend(session)

    documents = await backend.get_documents(COLLECTION)

    assert [document.id for document in documents] == ["a", "b"]
    assert "pageToken" not in session.requests[0]["params"]
    assert session.requests[1]["params"]["pageToken"] == "t1"


@pytest.mark.asyncio
async def test_empty_collection() -> None:
    backend = _backend(_FakeSession(_FakeResponse(200, {})))
    assert await backend.get_documents(COLLECTION) == []


@pytest.mark.asyncio
async def test_bearer_token_is_sent() -> None:
    session = _FakeSession(_FakeResponse(200, {}))

    async def _token() -> str:
        return "secret"

    backend = _backend(session, token_provider=_token)
    await backend.get_documents(COLLECTION)

    assert session.requests[0]["headers"]["authorization"] == "Bearer secret"


# ------------------------------------------------------------------
# Errors
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_http_error_raises_transport_error() -> None:
    backend = _backend(_FakeSession(_FakeResponse(500, "backend exploded")))

    with pytest.raises(HerdTransportError) as excinfo:
        await backend.get_documents(COLLECTION)

    assert excinfo.value.status_code == 500
    assert excinfo.value.path == COLLECTION


@pytest.mark.asyncio
async def test_client_error_is_wrapped() -> None:
    backend = _backend(_FakeSession(aiohttp.ClientConnectionError("refused")))

    with pytest.raises(HerdTransportError) as excinfo:
        await backend.get_document(f"{COLLECTION}/x")

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, aiohttp.ClientConnectionError)


@pytest.mark.asyncio
async def test_invalid_json_is_wrapped() -> None:
    backend = _backend(_FakeSession(_FakeResponse(200, "<html>")))

    with pytest.raises(HerdTransportError):
        await backend.get_documents(COLLECTION)


@pytest.mark.asyncio
async def test_failing_token_provider_is_wrapped() -> None:
    session = _FakeSession()

    async def _token() -> str:
        raise RuntimeError("token refresh failed")

    backend = _backend(session, token_provider=_token)

    with pytest.raises(HerdTransportError) as excinfo:
        await backend.set_document(f"{COLLECTION}/r1", {"lambsBorn": 1})

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert session.requests == []


@pytest.mark.asyncio
async def test_undecodable_fields_yield_empty_document(caplog: pytest.LogCaptureFixture) -> None:
    raw = {"name": f"{ROOT}/{COLLECTION}/bad", "fields": {"createdAt": {"timestampValue": "yesterday"}}}
    backend = _backend(_FakeSession(_FakeResponse(200, {"documents": [raw, _document("good")]})))

    documents = await backend.get_documents(COLLECTION)

    assert [(document.id, document.data) for document in documents] == [("bad", {}), ("good", {})]
    assert "Cannot decode fields" in caplog.text


# ------------------------------------------------------------------
# Writes
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_set_document_commits_with_server_time_transform() -> None:
    session = _FakeSession(_FakeResponse(200, {"writeResults": [{}]}))
    backend = _backend(session)

    await backend.set_document(f"{COLLECTION}/r1", {"lambsBorn": 3, "updatedAt": SERVER_TIMESTAMP})

    request = session.requests[0]
    assert request["method"] == "POST"
    assert request["url"].endswith("/documents:commit")
    (write,) = json.loads(request["data"])["writes"]
    assert write["update"] == {
        "name": f"{ROOT}/{COLLECTION}/r1",
        "fields": {"lambsBorn": {"integerValue": "3"}},
    }
    assert write["updateTransforms"] == [{"fieldPath": "updatedAt", "setToServerValue": "REQUEST_TIME"}]


@pytest.mark.asyncio
async def test_set_document_without_sentinel_has_no_transforms() -> None:
    session = _FakeSession(_FakeResponse(200, {}))
    await _backend(session).set_document(f"{COLLECTION}/r1", {"createdAt": NOW})

    (write,) = json.loads(session.requests[0]["data"])["writes"]
    assert "updateTransforms" not in write


@pytest.mark.asyncio
async def test_delete_missing_document_is_noop() -> None:
    session = _FakeSession(_FakeResponse(404, {}))

    await _backend(session).delete_document(f"{COLLECTION}/gone")

    assert session.requests[0]["method"] == "DELETE"


# ------------------------------------------------------------------
# Polling listener
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_listen_emits_on_change_and_error() -> None:
    session = _FakeSession(
        _FakeResponse(200, {"documents": [_document("a", "t1")]}),
        _FakeResponse(200, {"documents": [_document("a", "t1")]}),
        _FakeResponse(200, {"documents": [_document("a", "t2")]}),
        _FakeResponse(403, "denied"),
    )
    backend = _backend(session, poll_interval=0)
    calls: list[tuple[list[DocumentSnapshot] | None, Exception | None]] = []
    finished = asyncio.Event()

    def on_snapshot(documents: list[DocumentSnapshot] | None, error: Exception | None) -> None:
        calls.append((documents, error))
        if error is not None:
            finished.set()

    backend.listen(COLLECTION, on_snapshot)
    await asyncio.wait_for(finished.wait(), timeout=1)

    assert len(calls) == 3
    assert [document.id for document in calls[0][0] or []] == ["a"]
    assert calls[1][1] is None
    assert isinstance(calls[2][1], HerdTransportError)
    assert calls[2][1].status_code == 403
    await backend.close()


@pytest.mark.asyncio
async def test_removing_registration_stops_polling() -> None:
    session = _FakeSession(*[_FakeResponse(200, {}) for _ in range(50)])
    backend = _backend(session, poll_interval=0)
    calls: list[Any] = []

    registration = backend.listen(COLLECTION, lambda documents, error: calls.append((documents, error)))
    for _ in range(3):
        await asyncio.sleep(0)
    registration.remove()
    for _ in range(3):
        await asyncio.sleep(0)
    seen = len(session.requests)
    for _ in range(5):
        await asyncio.sleep(0)

    assert len(session.requests) == seen
    assert calls == [([], None)]


@pytest.mark.asyncio
async def test_close_keeps_external_session_open() -> None:
    session = _FakeSession()
    backend = _backend(session)

    await backend.close()

    assert session.closed is False


@pytest.mark.asyncio
async def test_listen_reports_token_failure_to_listener() -> None:
    async def _token() -> str:
        raise RuntimeError("token refresh failed")

    backend = _backend(_FakeSession(), token_provider=_token, poll_interval=0)
    errors: list[Exception | None] = []
    finished = asyncio.Event()

    def on_snapshot(documents: list[DocumentSnapshot] | None, error: Exception | None) -> None:
        errors.append(error)
        finished.set()

    backend.listen(COLLECTION, on_snapshot)
    await asyncio.wait_for(finished.wait(), timeout=1)

    assert len(errors) == 1
    assert isinstance(errors[0], HerdTransportError)
    await backend.close()


@pytest.mark.asyncio
async def test_listen_reports_unexpected_failure_to_listener() -> None:
    backend = _backend(_FakeSession(), poll_interval=0)
    errors: list[Exception | None] = []
    finished = asyncio.Event()

    async def _broken_list(collection_path: str) -> Any:
        raise KeyError(collection_path)

    backend._list = _broken_list  # type: ignore[method-assign]

    def on_snapshot(documents: list[DocumentSnapshot] | None, error: Exception | None) -> None:
        errors.append(error)
        finished.set()

    backend.listen(COLLECTION, on_snapshot)
    await asyncio.wait_for(finished.wait(), timeout=1)

    assert isinstance(errors[0], HerdTransportError)
    assert errors[0].path == COLLECTION
