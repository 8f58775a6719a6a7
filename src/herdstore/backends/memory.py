"""Process-local emulator of the remote document database."""

from __future__ import annotations

import copy
import itertools
import logging
import threading
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any
from urllib.parse import unquote

from herdstore.backends.base import SERVER_TIMESTAMP, DocumentSnapshot, SnapshotListener, split_path
from herdstore.models._base import utcnow

_logger = logging.getLogger(__name__)


class _Registration:
    def __init__(self, backend: InMemoryDocumentBackend, collection_path: str, token: int) -> None:
        self._backend = backend
        self._collection_path = collection_path
        self._token = token

    def remove(self) -> None:
        self._backend._remove_listener(self._collection_path, self._token)


class InMemoryDocumentBackend:
    """Dictionary-backed :class:`~herdstore.backends.base.DocumentBackend`.

    Listeners receive the full document set of their collection when
    attached and after every write or delete under it, synchronously on
    the writer's thread.
    """

    def __init__(self, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._documents: dict[str, dict[str, Any]] = {}
        self._listeners: dict[str, dict[int, SnapshotListener]] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.Lock()

    def _collection(self, collection_path: str) -> list[DocumentSnapshot]:
        prefix = f"{collection_path}/"
        snapshots: list[DocumentSnapshot] = []
        for path, data in self._documents.items():
            if not path.startswith(prefix) or "/" in path[len(prefix) :]:
                continue
            snapshots.append(
                DocumentSnapshot(
                    id=unquote(path[len(prefix) :]),
                    path=path,
                    exists=True,
                    data=copy.deepcopy(data),
                )
            )
        return snapshots

    def _emit(self, collection_path: str) -> None:
        with self._lock:
            listeners = list(self._listeners.get(collection_path, {}).values())
            documents = self._collection(collection_path)
        for listener in listeners:
            listener(list(documents), None)

    def _resolve(self, data: Mapping[str, Any]) -> dict[str, Any]:
        now = self._clock()
        return {key: now if value is SERVER_TIMESTAMP else copy.deepcopy(value) for key, value in data.items()}

    async def get_document(self, path: str) -> DocumentSnapshot:
        _, document_id = split_path(path)
        with self._lock:
            data = self._documents.get(path)
            if data is None:
                return DocumentSnapshot(id=unquote(document_id), path=path, exists=False)
            return DocumentSnapshot(id=unquote(document_id), path=path, exists=True, data=copy.deepcopy(data))

    async def get_documents(self, collection_path: str) -> list[DocumentSnapshot]:
        with self._lock:
            return self._collection(collection_path)

    async def set_document(self, path: str, data: Mapping[str, Any]) -> None:
        with self._lock:
            self._documents[path] = self._resolve(data)
        _logger.debug("SET %s", path)
        self._emit(split_path(path)[0])

    async def delete_document(self, path: str) -> None:
        with self._lock:
            removed = self._documents.pop(path, None)
        _logger.debug("DELETE %s", path)
        if removed is not None:
            self._emit(split_path(path)[0])

    def listen(self, collection_path: str, on_snapshot: SnapshotListener) -> _Registration:
        with self._lock:
            token = next(self._tokens)
            self._listeners.setdefault(collection_path, {})[token] = on_snapshot
            documents = self._collection(collection_path)
        _logger.debug("LISTEN %s (token %d)", collection_path, token)
        on_snapshot(documents, None)
        return _Registration(self, collection_path, token)

    def _remove_listener(self, collection_path: str, token: int) -> None:
        with self._lock:
            listeners = self._listeners.get(collection_path)
            if listeners is None or listeners.pop(token, None) is None:
                return
            if not listeners:
                self._listeners.pop(collection_path, None)
        _logger.debug("UNLISTEN %s (token %d)", collection_path, token)

    def listener_count(self, collection_path: str) -> int:
        with self._lock:
            return len(self._listeners.get(collection_path, {}))
