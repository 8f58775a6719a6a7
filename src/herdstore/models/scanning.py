"""Pregnancy scanning event model."""

from __future__ import annotations

from typing import ClassVar

from herdstore.models._base import HerdRecord
from herdstore.scope import CollectionName

WARNING_SCANNED_EXCEEDS_MATED = "scanned_exceeds_mated"
WARNING_PREGNANCY_COUNT_MISMATCH = "pregnancy_count_mismatch"
WARNING_FETUS_DISTRIBUTION_MISMATCH = "fetus_distribution_mismatch"


def _percentage(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return numerator / denominator * 100


class ScanningEvent(HerdRecord):
    """Scanning results and fetus distribution for a group.

    All ratios are derived; only the raw counts are persisted.
    """

    collection: ClassVar[CollectionName] = CollectionName.SCANNING_EVENTS

    ewes_mated: int = 0
    ewes_scanned: int = 0
    ewes_pregnant: int = 0
    ewes_not_pregnant: int = 0
    ewes_with_singles: int = 0
    ewes_with_twins: int = 0
    ewes_with_triplets: int = 0

    @property
    def conception_ratio(self) -> float:
        """Pregnant ewes as a percentage of ewes scanned."""
        return _percentage(self.ewes_pregnant, self.ewes_scanned)

    @property
    def scanned_fetuses(self) -> int:
        return self.ewes_with_singles + self.ewes_with_twins * 2 + self.ewes_with_triplets * 3

    @property
    def expected_lambing_percentage_pregnant(self) -> float:
        return _percentage(self.scanned_fetuses, self.ewes_pregnant)

    @property
    def expected_lambing_percentage_mated(self) -> float:
        return _percentage(self.scanned_fetuses, self.ewes_mated)

    def warnings(self) -> list[str]:
        """Codes for internally inconsistent counts."""
        found: list[str] = []
        if self.ewes_scanned > self.ewes_mated:
            found.append(WARNING_SCANNED_EXCEEDS_MATED)
        if self.ewes_pregnant + self.ewes_not_pregnant > self.ewes_scanned:
            found.append(WARNING_PREGNANCY_COUNT_MISMATCH)
        if self.ewes_with_singles + self.ewes_with_twins + self.ewes_with_triplets > self.ewes_pregnant:
            found.append(WARNING_FETUS_DISTRIBUTION_MISMATCH)
        return found
