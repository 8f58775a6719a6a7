"""Collection store contract shared by every backend.

A store is instantiated once per record kind and keyed by
:class:`~herdstore.scope.Scope`.  Implementations must serialize their
public entry points so that a mutation and the fan-out it triggers are
observed as one step, in program order.
"""

from __future__ import annotations

import abc
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Generic, TypeVar

from herdstore.exceptions import HerdStoreError
from herdstore.models._base import HerdRecord
from herdstore.scope import Scope
from herdstore.store.registry import Subscription

T = TypeVar("T", bound=HerdRecord)


@dataclass(frozen=True, slots=True)
class SnapshotResult(Generic[T]):
    """Payload delivered to subscription callbacks.

    Exactly one of ``records`` (success, possibly empty) or ``error``
    (terminal failure) is meaningful.
    """

    records: tuple[T, ...] = ()
    error: HerdStoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> list[T]:
        """Return the records, raising the carried error on failure."""
        if self.error is not None:
            raise self.error
        return list(self.records)

    @classmethod
    def success(cls, records: Iterable[T]) -> SnapshotResult[T]:
        return cls(records=tuple(records))

    @classmethod
    def failure(cls, error: HerdStoreError) -> SnapshotResult[T]:
        return cls(error=error)


SnapshotCallback = Callable[[SnapshotResult[T]], None]


def _sort_key(record: HerdRecord) -> tuple[int, float]:
    date: datetime | None = record.display_date
    if date is None:
        return (1, 0.0)
    return (0, -date.timestamp())


def sort_snapshot(records: Iterable[T]) -> list[T]:
    """Order records newest first by display date; undated records last.

    The sort is stable, so undated records keep their input order.
    """
    return sorted(records, key=_sort_key)


class CollectionStore(abc.ABC, Generic[T]):
    """CRUD + subscribe over one record kind, keyed by scope."""

    record_type: type[T]

    @abc.abstractmethod
    async def fetch_all(self, scope: Scope) -> list[T]:
        """All records of *scope*, newest first."""

    @abc.abstractmethod
    async def fetch_by_id(self, scope: Scope, record_id: str) -> T | None:
        """The record with *record_id*, or ``None`` when absent."""

    @abc.abstractmethod
    async def create(self, record: T) -> None:
        """Create or replace *record* by id.

        Replacing keeps the stored ``created_at`` and stamps ``updated_at``
        at commit time, as :meth:`update` does.
        """

    @abc.abstractmethod
    async def update(self, record: T) -> None:
        """Replace an existing record.

        ``updated_at`` is assigned by the authoritative side at commit
        time and ``created_at`` is kept from the stored record.

        Raises
        ------
        RecordNotFoundError
            No record with ``record.id`` exists in ``record.scope``.
        """

    @abc.abstractmethod
    async def delete(self, scope: Scope, record_id: str) -> None:
        """Delete a record; deleting an absent id is a no-op."""

    @abc.abstractmethod
    async def subscribe(self, scope: Scope, callback: SnapshotCallback[T]) -> Subscription:
        """Deliver the current snapshot of *scope* now and after every change."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Cancel every subscription still registered with this store."""
