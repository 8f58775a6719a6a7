"""Record models for the scoped farm collections."""

from herdstore.models._base import HerdRecord, OptionalTimestamp, Timestamp, parse_timestamp
from herdstore.models.breeding import BreedingEvent
from herdstore.models.lambing import LambingRecord
from herdstore.models.scanning import ScanningEvent

__all__ = [
    "BreedingEvent",
    "HerdRecord",
    "LambingRecord",
    "OptionalTimestamp",
    "ScanningEvent",
    "Timestamp",
    "parse_timestamp",
]
