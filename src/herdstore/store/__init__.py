"""Collection store contract and its implementations."""

from herdstore.store.base import CollectionStore, SnapshotCallback, SnapshotResult, sort_snapshot
from herdstore.store.memory import InMemoryCollectionStore
from herdstore.store.registry import ListenerRegistry, Subscription, SubscriptionState
from herdstore.store.remote import RemoteCollectionStore

__all__ = [
    "CollectionStore",
    "InMemoryCollectionStore",
    "ListenerRegistry",
    "RemoteCollectionStore",
    "SnapshotCallback",
    "SnapshotResult",
    "Subscription",
    "SubscriptionState",
    "sort_snapshot",
]
