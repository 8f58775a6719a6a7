"""Scope tuple and the canonical document address resolver.

Every record lives under::

    users/{userId}/farms/{farmId}/lambingSeasonGroups/{groupId}/{collection}/{id}

Path components are percent-encoded so that a ``/`` inside an id can
never shift the hierarchy; plain ids come out unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from urllib.parse import quote


class CollectionName(StrEnum):
    BREEDING_EVENTS = "breedingEvents"
    SCANNING_EVENTS = "scanningEvents"
    LAMBING_RECORDS = "lambingRecords"


@dataclass(frozen=True, slots=True)
class Scope:
    """Owning collection boundary: (user, farm, lambing season group)."""

    user_id: str
    farm_id: str
    group_id: str

    def __str__(self) -> str:
        return f"{self.user_id}/{self.farm_id}/{self.group_id}"


def _component(value: str) -> str:
    return quote(value, safe="")


def collection_path(scope: Scope, collection: CollectionName) -> str:
    """Address of the collection holding *collection* records for *scope*."""
    return (
        f"users/{_component(scope.user_id)}"
        f"/farms/{_component(scope.farm_id)}"
        f"/lambingSeasonGroups/{_component(scope.group_id)}"
        f"/{collection.value}"
    )


def document_path(scope: Scope, collection: CollectionName, record_id: str) -> str:
    """Address of a single record document."""
    return f"{collection_path(scope, collection)}/{_component(record_id)}"
