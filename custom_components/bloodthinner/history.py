"""Dosage pattern versions and their validity windows."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal

from .exceptions import AmbiguousPatternWindowError, PatternOverlapError
from .pattern import format_pattern

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PatternVersion:
    """One time-bounded definition of a repeating dose cycle.

    end_date is inclusive; None means the version is still in force.
    version_id is the storage row id, larger ids were created later.
    """

    sequence: tuple[Decimal, ...]
    start_date: date
    end_date: date | None = None
    version_id: int | None = None
    notes: str | None = None

    @property
    def length(self) -> int:
        return len(self.sequence)

    @property
    def average(self) -> Decimal:
        if not self.sequence:
            return Decimal(0)
        return sum(self.sequence, Decimal(0)) / len(self.sequence)

    @property
    def is_open(self) -> bool:
        return self.end_date is None

    def covers(self, target: date) -> bool:
        """Return True if target falls inside this version's window."""
        if target < self.start_date:
            return False
        return self.end_date is None or target <= self.end_date

    def display(self, unit: str = "mg") -> str:
        return format_pattern(self.sequence, unit)

    def as_dict(self) -> dict:
        """Serializable form for entity attributes."""
        return {
            "id": self.version_id,
            "sequence": [float(d) for d in self.sequence],
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "length": self.length,
            "average": round(float(self.average), 2),
            "notes": self.notes,
        }


def _recency(indexed: tuple[int, PatternVersion]) -> tuple:
    position, version = indexed
    vid = version.version_id if version.version_id is not None else -1
    return (version.start_date, vid, position)


def active_version_on(
    versions: Iterable[PatternVersion],
    target: date,
    strict: bool = False,
) -> PatternVersion | None:
    """Return the version whose window contains target, or None.

    Versions are looked up by date, never by position. If the non-overlap
    invariant was broken upstream and several versions cover the date,
    the latest start wins (then the newest id, then the last one given)
    and a warning is logged; with strict=True that raises instead.
    """
    matches = [
        (position, version)
        for position, version in enumerate(versions)
        if version.covers(target)
    ]
    if not matches:
        return None

    if len(matches) > 1:
        ids = [v.version_id for _, v in matches]
        if strict:
            raise AmbiguousPatternWindowError(
                f"{len(matches)} pattern versions cover {target}: {ids}"
            )
        _LOGGER.warning(
            "Overlapping dosage patterns %s on %s; using the latest start",
            ids,
            target,
        )

    return max(matches, key=_recency)[1]


def currently_active_version(
    versions: Iterable[PatternVersion],
) -> PatternVersion | None:
    """Return the open-ended version with the latest start, or None.

    This is the pattern "in force right now" for display. To find the
    dose for any date, today included, use active_version_on.
    """
    open_versions = [
        (position, version)
        for position, version in enumerate(versions)
        if version.is_open
    ]
    if not open_versions:
        return None
    return max(open_versions, key=_recency)[1]


def find_overlaps(
    versions: Iterable[PatternVersion],
    start: date,
    end: date | None = None,
) -> list[PatternVersion]:
    """Return the versions whose window intersects [start, end]."""
    overlapping = []
    for version in versions:
        if end is not None and version.start_date > end:
            continue
        if version.end_date is not None and version.end_date < start:
            continue
        overlapping.append(version)
    return overlapping


def plan_new_version(
    versions: Sequence[PatternVersion],
    start: date,
    end: date | None = None,
    close_previous: bool = True,
) -> PatternVersion | None:
    """Check a new version against the history before it is written.

    Returns the existing version with its end date moved to the day
    before start when close_previous is set and such a version exists,
    otherwise None. Raises PatternOverlapError when the new window cannot
    be added without overlapping.
    """
    if end is not None and end < start:
        raise ValueError("End date must be on or after the start date")

    closed: PatternVersion | None = None
    remaining = list(versions)

    if close_previous:
        # Only a version already running on start can be closed; later ones
        # are left to the overlap check
        candidates = [
            v
            for v in versions
            if v.start_date < start and (v.end_date is None or v.end_date >= start)
        ]
        if candidates:
            previous = max(enumerate(candidates), key=_recency)[1]
            closed = replace(previous, end_date=start - timedelta(days=1))
            remaining = [closed if v is previous else v for v in versions]

    overlapping = find_overlaps(remaining, start, end)
    if overlapping:
        raise PatternOverlapError(
            "A pattern already exists for the specified date range: "
            f"{[v.version_id for v in overlapping]}"
        )

    return closed
