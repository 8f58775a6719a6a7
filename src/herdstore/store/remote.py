"""Remote-backed store over a document backend.

Translates the collection store contract onto a document collection at
the canonical scope address.  Each subscription owns exactly one backend
listener; every backend notification carries the full document set,
which is re-decoded, sorted and forwarded.  Documents that fail to
decode are logged and skipped, never fatal.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable
from typing import Generic, TypeVar

from herdstore.backends.base import SERVER_TIMESTAMP, DocumentBackend, DocumentSnapshot, ListenerRegistration
from herdstore.exceptions import HerdTransportError, RecordDecodeError, RecordNotFoundError
from herdstore.scope import CollectionName, Scope, collection_path, document_path
from herdstore.store.base import CollectionStore, SnapshotCallback, SnapshotResult, T, sort_snapshot
from herdstore.store.registry import ListenerRegistry, Subscription

_logger = logging.getLogger(__name__)

R = TypeVar("R")


class RemoteCollectionStore(CollectionStore[T], Generic[T]):
    """:class:`CollectionStore` backed by a :class:`DocumentBackend`.

    Public entry points are serialized with one ``asyncio.Lock``.  Backend
    listener callbacks may arrive on any thread; they are marshalled onto
    the subscriber's event loop before decoding and delivery.
    """

    def __init__(
        self,
        record_type: type[T],
        backend: DocumentBackend,
        *,
        trace_snapshots: bool = False,
    ) -> None:
        self.record_type = record_type
        self._backend = backend
        self._trace_snapshots = trace_snapshots
        self._registry = ListenerRegistry()
        self._lock = asyncio.Lock()

    @property
    def _collection(self) -> CollectionName:
        return self.record_type.collection

    async def _call(self, operation: str, path: str, awaitable: Awaitable[R]) -> R:
        try:
            return await awaitable
        except HerdTransportError:
            raise
        except OSError as exc:
            raise HerdTransportError(f"{operation} {path} failed: {exc}", path=path) from exc

    def _decode(self, documents: Iterable[DocumentSnapshot]) -> list[T]:
        records: list[T] = []
        for document in documents:
            if not document.exists:
                continue
            try:
                records.append(self.record_type.from_document(document.data, document.id))
            except RecordDecodeError as exc:
                _logger.warning("Skipping undecodable document %s: %s", document.path, exc)
        return sort_snapshot(records)

    async def fetch_all(self, scope: Scope) -> list[T]:
        async with self._lock:
            path = collection_path(scope, self._collection)
            documents = await self._call("GET", path, self._backend.get_documents(path))
            records = self._decode(documents)
            _logger.debug("Fetched %d of %d documents from %s", len(records), len(documents), path)
            return records

    async def fetch_by_id(self, scope: Scope, record_id: str) -> T | None:
        async with self._lock:
            path = document_path(scope, self._collection, record_id)
            document = await self._call("GET", path, self._backend.get_document(path))
            if not document.exists:
                _logger.debug("Document %s does not exist", path)
                return None
            try:
                return self.record_type.from_document(document.data, document.id)
            except RecordDecodeError as exc:
                _logger.warning("Treating undecodable document %s as absent: %s", path, exc)
                return None

    async def create(self, record: T) -> None:
        async with self._lock:
            path = document_path(record.scope, self._collection, record.id)
            current = await self._call("GET", path, self._backend.get_document(path))
            document = record.to_document()
            stored_created_at = current.data.get("createdAt") if current.exists else None
            if stored_created_at is None:
                document["updatedAt"] = document["createdAt"]
            else:
                document["createdAt"] = stored_created_at
                document["updatedAt"] = SERVER_TIMESTAMP
            await self._call("SET", path, self._backend.set_document(path, document))
            _logger.debug("%s %s", "Created" if stored_created_at is None else "Replaced", path)

    async def update(self, record: T) -> None:
        async with self._lock:
            path = document_path(record.scope, self._collection, record.id)
            current = await self._call("GET", path, self._backend.get_document(path))
            if not current.exists:
                raise RecordNotFoundError(
                    f"{self.record_type.__name__} {record.id!r} not found at {path}",
                    record_id=record.id,
                    path=path,
                )
            document = record.to_document()
            stored_created_at = current.data.get("createdAt")
            if stored_created_at is not None:
                document["createdAt"] = stored_created_at
            document["updatedAt"] = SERVER_TIMESTAMP
            await self._call("SET", path, self._backend.set_document(path, document))
            _logger.debug("Updated %s", path)

    async def delete(self, scope: Scope, record_id: str) -> None:
        async with self._lock:
            path = document_path(scope, self._collection, record_id)
            await self._call("DELETE", path, self._backend.delete_document(path))
            _logger.debug("Deleted %s", path)

    async def subscribe(self, scope: Scope, callback: SnapshotCallback[T]) -> Subscription:
        loop = asyncio.get_running_loop()
        async with self._lock:
            path = collection_path(scope, self._collection)
            subscription = Subscription(scope, callback)

            def on_snapshot(documents: list[DocumentSnapshot] | None, error: Exception | None) -> None:
                if loop.is_closed():
                    return
                loop.call_soon_threadsafe(self._on_remote_snapshot, subscription, path, documents, error)

            try:
                registration = self._backend.listen(path, on_snapshot)
            except OSError as exc:
                raise HerdTransportError(f"LISTEN {path} failed: {exc}", path=path) from exc
            self._registry.add(subscription)
            subscription.set_teardown(lambda: self._teardown(subscription, path, registration))
            _logger.debug("Listener %s attached to %s", subscription.handle, path)
            return subscription

    def _teardown(self, subscription: Subscription, path: str, registration: ListenerRegistration) -> None:
        self._registry.remove(subscription.handle)
        registration.remove()
        _logger.debug("Listener %s removed from %s", subscription.handle, path)

    def _on_remote_snapshot(
        self,
        subscription: Subscription,
        path: str,
        documents: list[DocumentSnapshot] | None,
        error: Exception | None,
    ) -> None:
        if not subscription.is_active:
            return
        if error is not None:
            _logger.warning("Listener on %s failed: %s", path, error)
            failure = (
                error
                if isinstance(error, HerdTransportError)
                else HerdTransportError(f"Listener on {path} failed: {error}", path=path)
            )
            subscription.deliver(SnapshotResult.failure(failure))
            subscription.cancel()
            return
        records = self._decode(documents or [])
        subscription.deliver(SnapshotResult.success(records))
        if self._trace_snapshots:
            _logger.debug("Delivered %d records from %s to %s", len(records), path, subscription.handle)

    async def close(self) -> None:
        async with self._lock:
            self._registry.cancel_all()

    @property
    def listener_count(self) -> int:
        return len(self._registry)
