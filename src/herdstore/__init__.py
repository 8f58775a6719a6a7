"""herdstore - Scoped farm record stores with real-time change notification."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("herdstore")
except PackageNotFoundError:
    __version__ = "0+local"

from herdstore.backends import SERVER_TIMESTAMP, DocumentBackend, FirestoreRestBackend, InMemoryDocumentBackend
from herdstore.config import StoreConfig
from herdstore.exceptions import (
    HerdConfigError,
    HerdStoreError,
    HerdTransportError,
    RecordDecodeError,
    RecordNotFoundError,
)
from herdstore.factory import HerdStores, create_stores
from herdstore.models import BreedingEvent, HerdRecord, LambingRecord, ScanningEvent
from herdstore.scope import CollectionName, Scope, collection_path, document_path
from herdstore.store import (
    CollectionStore,
    InMemoryCollectionStore,
    RemoteCollectionStore,
    SnapshotResult,
    Subscription,
    SubscriptionState,
)

__all__ = [
    "__version__",
    "BreedingEvent",
    "CollectionName",
    "CollectionStore",
    "DocumentBackend",
    "FirestoreRestBackend",
    "HerdConfigError",
    "HerdRecord",
    "HerdStoreError",
    "HerdStores",
    "HerdTransportError",
    "InMemoryCollectionStore",
    "InMemoryDocumentBackend",
    "LambingRecord",
    "RecordDecodeError",
    "RecordNotFoundError",
    "RemoteCollectionStore",
    "SERVER_TIMESTAMP",
    "ScanningEvent",
    "Scope",
    "SnapshotResult",
    "StoreConfig",
    "Subscription",
    "SubscriptionState",
    "collection_path",
    "create_stores",
    "document_path",
]
