"""Document backend interface consumed by the remote-backed store.

The store only needs address-based primitives: read one document, read
a whole collection, replace a document, delete a document, and attach a
listener that receives the full document set of a collection on every
change.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Final, Protocol


class _ServerTimestamp:
    """Sentinel asking the backend to store its own commit time."""

    _instance: _ServerTimestamp | None = None

    def __new__(cls) -> _ServerTimestamp:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Final = _ServerTimestamp()


@dataclass(frozen=True, slots=True)
class DocumentSnapshot:
    """One document as read from a backend."""

    id: str
    path: str
    exists: bool
    data: dict[str, Any] = field(default_factory=dict)


SnapshotListener = Callable[[list[DocumentSnapshot] | None, Exception | None], None]
"""Receives ``(documents, None)`` on change or ``(None, error)`` on failure."""


class ListenerRegistration(Protocol):
    def remove(self) -> None: ...


class DocumentBackend(Protocol):
    """Structural interface for a remote document database."""

    async def get_document(self, path: str) -> DocumentSnapshot: ...

    async def get_documents(self, collection_path: str) -> list[DocumentSnapshot]: ...

    async def set_document(self, path: str, data: Mapping[str, Any]) -> None: ...

    async def delete_document(self, path: str) -> None: ...

    def listen(self, collection_path: str, on_snapshot: SnapshotListener) -> ListenerRegistration: ...


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into ``(collection_path, document_id)``."""
    parent, _, document_id = path.rpartition("/")
    return parent, document_id
