"""In-memory reference store.

Holds authoritative state for every scope plus the listener registry.
All public entry points run under one ``asyncio.Lock`` so a mutation
and its fan-out form one step; nothing awaits inside the critical
section, so listeners of one scope see the same snapshot sequence in
the same order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Generic

from herdstore.exceptions import RecordNotFoundError
from herdstore.models._base import utcnow
from herdstore.scope import Scope, document_path
from herdstore.store.base import CollectionStore, SnapshotCallback, SnapshotResult, T, sort_snapshot
from herdstore.store.registry import ListenerRegistry, Subscription

_logger = logging.getLogger(__name__)


class InMemoryCollectionStore(CollectionStore[T], Generic[T]):
    """Reference :class:`CollectionStore` for tests and local development.

    Records are keyed by ``(scope, id)``.  ``clock`` supplies commit
    timestamps for :meth:`update`; ``updated_at`` never moves backwards
    even if the clock does.
    """

    def __init__(
        self,
        record_type: type[T],
        *,
        initial_records: Iterable[T] = (),
        clock: Callable[[], datetime] = utcnow,
        trace_snapshots: bool = False,
    ) -> None:
        self.record_type = record_type
        self._clock = clock
        self._trace_snapshots = trace_snapshots
        self._records: dict[tuple[Scope, str], T] = {}
        self._registry = ListenerRegistry()
        self._lock = asyncio.Lock()
        for record in initial_records:
            self._records[(record.scope, record.id)] = record
        _logger.debug(
            "In-memory %s store initialized with %d records",
            record_type.collection.value,
            len(self._records),
        )

    def _snapshot(self, scope: Scope) -> list[T]:
        return sort_snapshot(record for (record_scope, _), record in self._records.items() if record_scope == scope)

    def _notify(self, scope: Scope) -> None:
        if not self._registry.for_scope(scope):
            return
        records = self._snapshot(scope)
        delivered = self._registry.dispatch(scope, SnapshotResult.success(records))
        if self._trace_snapshots:
            _logger.debug(
                "Delivered %d %s to %d listeners of %s",
                len(records),
                self.record_type.collection.value,
                delivered,
                scope,
            )

    async def fetch_all(self, scope: Scope) -> list[T]:
        async with self._lock:
            return self._snapshot(scope)

    async def fetch_by_id(self, scope: Scope, record_id: str) -> T | None:
        async with self._lock:
            return self._records.get((scope, record_id))

    async def create(self, record: T) -> None:
        async with self._lock:
            key = (record.scope, record.id)
            current = self._records.get(key)
            if current is None:
                stamps = {"updated_at": record.created_at}
            else:
                stamps = {
                    "created_at": current.created_at,
                    "updated_at": max(self._clock(), current.updated_at),
                }
            self._records[key] = record.model_copy(update=stamps)
            _logger.debug(
                "%s %s",
                "Created" if current is None else "Replaced",
                document_path(record.scope, self.record_type.collection, record.id),
            )
            self._notify(record.scope)

    async def update(self, record: T) -> None:
        async with self._lock:
            key = (record.scope, record.id)
            current = self._records.get(key)
            if current is None:
                path = document_path(record.scope, self.record_type.collection, record.id)
                raise RecordNotFoundError(
                    f"{self.record_type.__name__} {record.id!r} not found at {path}",
                    record_id=record.id,
                    path=path,
                )
            committed_at = max(self._clock(), current.updated_at)
            self._records[key] = record.model_copy(
                update={"created_at": current.created_at, "updated_at": committed_at},
            )
            _logger.debug("Updated %s", document_path(record.scope, self.record_type.collection, record.id))
            self._notify(record.scope)

    async def delete(self, scope: Scope, record_id: str) -> None:
        async with self._lock:
            if self._records.pop((scope, record_id), None) is None:
                _logger.debug("Delete of absent %s %r ignored", self.record_type.__name__, record_id)
                return
            _logger.debug("Deleted %s", document_path(scope, self.record_type.collection, record_id))
            self._notify(scope)

    async def subscribe(self, scope: Scope, callback: SnapshotCallback[T]) -> Subscription:
        async with self._lock:
            subscription = Subscription(scope, callback)
            subscription.set_teardown(lambda: self._registry.remove(subscription.handle))
            self._registry.add(subscription)
            _logger.debug("Listener %s attached to %s", subscription.handle, scope)
            subscription.deliver(SnapshotResult.success(self._snapshot(scope)))
            return subscription

    async def close(self) -> None:
        async with self._lock:
            self._registry.cancel_all()

    @property
    def listener_count(self) -> int:
        return len(self._registry)
