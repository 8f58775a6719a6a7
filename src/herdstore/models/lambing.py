"""Lambing record model."""

from __future__ import annotations

from typing import ClassVar

from pydantic import Field

from herdstore.models._base import HerdRecord
from herdstore.scope import CollectionName

WARNING_MORTALITY_EXCEEDS_BORN = "mortality_exceeds_born"
WARNING_UNUSUALLY_HIGH_LAMBING = "unusually_high_lambing"

#: Lambing percentages above this are flagged for review.
HIGH_LAMBING_PERCENTAGE = 200.0


class LambingRecord(HerdRecord):
    collection: ClassVar[CollectionName] = CollectionName.LAMBING_RECORDS

    ewes_lambed: int = 0
    lambs_born: int = 0
    lambs_mortality_0_to_30_days: int = Field(default=0, alias="lambsMortality0to30Days")
    """Lambs lost within 30 days of birth."""
    average_birth_weight: float | None = None
    """Average birth weight in kilograms."""

    @property
    def lambing_percentage(self) -> float:
        if self.ewes_lambed <= 0:
            return 0.0
        return self.lambs_born / self.ewes_lambed * 100

    @property
    def mortality_rate(self) -> float:
        if self.lambs_born <= 0:
            return 0.0
        return self.lambs_mortality_0_to_30_days / self.lambs_born * 100

    @property
    def survival_rate(self) -> float:
        return 100 - self.mortality_rate

    @property
    def lambs_survived(self) -> int:
        return self.lambs_born - self.lambs_mortality_0_to_30_days

    def warnings(self) -> list[str]:
        found: list[str] = []
        if self.lambs_mortality_0_to_30_days > self.lambs_born:
            found.append(WARNING_MORTALITY_EXCEEDS_BORN)
        if self.lambing_percentage > HIGH_LAMBING_PERCENTAGE:
            found.append(WARNING_UNUSUALLY_HIGH_LAMBING)
        return found
