"""Builds the per-kind stores for one backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from herdstore.backends.base import DocumentBackend
from herdstore.backends.firestore_rest import FirestoreRestBackend, TokenProvider
from herdstore.config import BACKEND_MEMORY, BACKEND_REMOTE, StoreConfig
from herdstore.exceptions import HerdConfigError
from herdstore.models import BreedingEvent, LambingRecord, ScanningEvent
from herdstore.store.base import CollectionStore
from herdstore.store.memory import InMemoryCollectionStore
from herdstore.store.remote import RemoteCollectionStore

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HerdStores:
    """One store per record kind, sharing a backend.

    ``owned_backend`` is set only when :func:`create_stores` built the
    backend itself; :meth:`close` closes it.  A backend passed in by the
    caller stays open.
    """

    breeding_events: CollectionStore[BreedingEvent]
    scanning_events: CollectionStore[ScanningEvent]
    lambing_records: CollectionStore[LambingRecord]
    owned_backend: FirestoreRestBackend | None = field(default=None, repr=False)

    async def close(self) -> None:
        """Cancel every open subscription, then close an owned backend."""
        await self.breeding_events.close()
        await self.scanning_events.close()
        await self.lambing_records.close()
        if self.owned_backend is not None:
            await self.owned_backend.close()


def create_stores(
    config: StoreConfig | None = None,
    *,
    backend: DocumentBackend | None = None,
    token_provider: TokenProvider | None = None,
) -> HerdStores:
    """Create the three stores described by *config*.

    Passing *backend* always yields remote-backed stores over it.  With
    ``config.backend == "remote"`` and no backend, a
    :class:`FirestoreRestBackend` is built from the config; its HTTP
    session is opened lazily on first use.
    """
    config = config or StoreConfig()
    trace = config.trace_snapshots

    if backend is None and config.backend == BACKEND_MEMORY:
        _logger.debug("Using in-memory stores")
        return HerdStores(
            breeding_events=InMemoryCollectionStore(BreedingEvent, trace_snapshots=trace),
            scanning_events=InMemoryCollectionStore(ScanningEvent, trace_snapshots=trace),
            lambing_records=InMemoryCollectionStore(LambingRecord, trace_snapshots=trace),
        )

    owned_backend: FirestoreRestBackend | None = None
    if backend is None:
        if config.backend != BACKEND_REMOTE:
            raise HerdConfigError(f"Unknown store backend {config.backend!r}")
        owned_backend = FirestoreRestBackend.from_config(config, token_provider=token_provider)
        backend = owned_backend

    _logger.debug("Using remote stores over %s", type(backend).__name__)
    return HerdStores(
        breeding_events=RemoteCollectionStore(BreedingEvent, backend, trace_snapshots=trace),
        scanning_events=RemoteCollectionStore(ScanningEvent, backend, trace_snapshots=trace),
        lambing_records=RemoteCollectionStore(LambingRecord, backend, trace_snapshots=trace),
        owned_backend=owned_backend,
    )
