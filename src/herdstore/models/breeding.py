"""Breeding event model.

Tracks artificial insemination and/or natural mating for a lambing
season group, plus the optional follow-up ram period.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import ClassVar

from herdstore.models._base import HerdRecord, OptionalTimestamp
from herdstore.scope import CollectionName


def _whole_days(start: datetime | None, end: datetime | None) -> int | None:
    if start is None or end is None:
        return None
    return max(0, (end - start).days)


class BreedingEvent(HerdRecord):
    """AI and/or natural mating event.

    Ordered by ``calculation_date`` (AI date, falling back to the start
    of natural mating); events with neither sort last.
    """

    collection: ClassVar[CollectionName] = CollectionName.BREEDING_EVENTS

    ai_date: OptionalTimestamp = None
    """Artificial insemination date."""
    natural_mating_start: OptionalTimestamp = None
    natural_mating_end: OptionalTimestamp = None
    used_follow_up_rams: bool = False
    follow_up_rams_in: OptionalTimestamp = None
    """Required when ``used_follow_up_rams`` is set."""
    follow_up_rams_out: OptionalTimestamp = None

    @property
    def natural_mating_days(self) -> int | None:
        """Length of the natural mating period in whole days."""
        return _whole_days(self.natural_mating_start, self.natural_mating_end)

    @property
    def follow_up_days(self) -> int | None:
        """Length of the follow-up ram period in whole days."""
        return _whole_days(self.follow_up_rams_in, self.follow_up_rams_out)

    @property
    def calculation_date(self) -> datetime | None:
        return self.ai_date or self.natural_mating_start

    @property
    def display_date(self) -> datetime | None:
        return self.calculation_date

    @property
    def year(self) -> int:
        date = self.calculation_date
        if date is None:
            return datetime.now(UTC).year
        return date.year

    @property
    def has_breeding_data(self) -> bool:
        return self.ai_date is not None or self.natural_mating_start is not None

    @property
    def breeding_methods(self) -> list[str]:
        """Method codes in display order (``"ai"``, ``"natural"``)."""
        methods: list[str] = []
        if self.ai_date is not None:
            methods.append("ai")
        if self.natural_mating_start is not None:
            methods.append("natural")
        return methods

    @property
    def has_valid_natural_mating_dates(self) -> bool:
        start, end = self.natural_mating_start, self.natural_mating_end
        if start is None or end is None:
            return start is None and end is None
        return end >= start

    @property
    def has_valid_follow_up_dates(self) -> bool:
        rams_in, rams_out = self.follow_up_rams_in, self.follow_up_rams_out
        if not self.used_follow_up_rams:
            return rams_in is None and rams_out is None
        if rams_in is None or rams_out is None:
            return False
        return rams_out >= rams_in

    @property
    def is_valid(self) -> bool:
        return self.has_breeding_data and self.has_valid_natural_mating_dates and self.has_valid_follow_up_dates
