"""Inventory analysis: decide which sub-ranges of a request are missing locally.

A single missed hourly report is not a gap: consecutive stored valid times
(and the range edges) are only reported when they are further apart than the
tolerance, which defaults to slightly over one hour.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wxobs.config import GAP_TOLERANCE_SECONDS, MAX_MISSING_RANGES
from wxobs.core.time_range import TimeRange

if TYPE_CHECKING:
    from wxobs.storage.db import ObsDatabase


@dataclass
class InventoryReport:
    """Result of an inventory check.

    ``truncated`` is set when more gaps existed than ``max_missing`` allowed;
    only the earliest ones are listed in that case.
    """

    missing: list[TimeRange] = field(default_factory=list)
    truncated: bool = False

    @property
    def sufficient(self) -> bool:
        return not self.missing


def find_missing_ranges(
    valid_times: list[int],
    time_range: TimeRange,
    tolerance_seconds: int = GAP_TOLERANCE_SECONDS,
    max_missing: int = MAX_MISSING_RANGES,
) -> InventoryReport:
    """Scan ascending *valid_times* (Unix seconds) for gaps within *time_range*.

    Parameters
    ----------
    valid_times : ascending stored timestamps, already restricted to the range.
    time_range : the requested interval.
    tolerance_seconds : largest spacing that still counts as covered.
    max_missing : cap on the number of reported ranges.

    Returns
    -------
    InventoryReport with missing ranges in ascending order.
    """
    if not valid_times:
        return InventoryReport(missing=[time_range])

    start, end = time_range.start_ts, time_range.end_ts
    gaps: list[tuple[int, int]] = []

    # Leading edge
    if valid_times[0] - start > tolerance_seconds:
        gaps.append((start, valid_times[0]))

    prev = valid_times[0]
    for t in valid_times[1:]:
        if t - prev > tolerance_seconds:
            gaps.append((prev, t))
        prev = t

    # Trailing edge
    if end - prev > tolerance_seconds:
        gaps.append((prev, end))

    truncated = len(gaps) > max_missing
    if truncated:
        gaps = gaps[:max_missing]

    return InventoryReport(
        missing=[TimeRange.from_timestamps(a, b) for a, b in gaps],
        truncated=truncated,
    )


def have_inventory(
    db: ObsDatabase,
    site: str,
    time_range: TimeRange,
    tolerance_seconds: int = GAP_TOLERANCE_SECONDS,
    max_missing: int = MAX_MISSING_RANGES,
) -> InventoryReport:
    """Check whether the store covers *time_range* for *site*.

    *site* must already be lowercase. Read failures raise StoreError; they are
    never reported as missing data.
    """
    valid_times = db.valid_times(site, time_range)
    return find_missing_ranges(valid_times, time_range, tolerance_seconds, max_missing)
