"""Document backends the remote-backed store can run on."""

from herdstore.backends.base import (
    SERVER_TIMESTAMP,
    DocumentBackend,
    DocumentSnapshot,
    ListenerRegistration,
    SnapshotListener,
)
from herdstore.backends.firestore_rest import FirestoreRestBackend
from herdstore.backends.memory import InMemoryDocumentBackend

__all__ = [
    "SERVER_TIMESTAMP",
    "DocumentBackend",
    "DocumentSnapshot",
    "FirestoreRestBackend",
    "InMemoryDocumentBackend",
    "ListenerRegistration",
    "SnapshotListener",
]
