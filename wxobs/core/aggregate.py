"""Windowed aggregation of hourly observations: max/min temperature and precipitation.

Windows are identified by their END instant. The first end is the UTC day
boundary of the range start plus ``window_end_hour`` hours, shifted by whole
increments (forward or back) to the earliest such instant at or after the
range start; ends are produced until they pass the range end. Both
policies walk the ascending samples once with two monotone cursors (``lo``
for the window start, ``hi`` for the window end), so samples older than the
current window are never scanned again.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Sequence

import numpy as np
import pandas as pd

from wxobs.config import (
    DAYSEC,
    HOURSEC,
    MAX_WINDOWS,
    TRACE_SENTINEL_IN,
    TRACE_TOTAL_IN,
    TRACE_UPPER_IN,
)
from wxobs.core.time_range import TimeRange, from_epoch
from wxobs.errors import ValidationError
from wxobs.storage.db import ObsRow

Extreme = Literal["max", "min"]

NO_DATA = float("nan")


@dataclass(frozen=True)
class TemperatureObservation:
    """Aggregated temperature (°F) for the window ending at ``valid_time``."""

    valid_time: datetime
    value: float


@dataclass(frozen=True)
class PrecipitationObservation:
    """Accumulated precipitation (in.) for the window ending at ``valid_time``."""

    valid_time: datetime
    value: float


# ── Window layout ──────────────────────────────────────────────────────────

def _hours_to_seconds(name: str, hours: float) -> int:
    if hours is None or not math.isfinite(hours) or hours <= 0:
        raise ValidationError(f"{name} must be a finite number of hours > 0, got {hours}")
    return int(round(hours * HOURSEC))


def window_ends(
    time_range: TimeRange,
    window_end_hour: int,
    increment_hours: float,
    max_windows: int = MAX_WINDOWS,
) -> np.ndarray:
    """Return the ascending window end times (Unix seconds) for *time_range*.

    Raises ValidationError for an empty range, an hour outside [0, 24], a
    non-positive increment, or more than *max_windows* windows; all checks
    happen before the array is built.
    """
    if time_range.is_empty:
        raise ValidationError(f"empty time range {time_range}")
    if not 0 <= window_end_hour <= 24:
        raise ValidationError(f"window_end must be within [0, 24], got {window_end_hour}")
    step = _hours_to_seconds("window_increment", increment_hours)

    start, end = time_range.start_ts, time_range.end_ts
    first = (start // DAYSEC) * DAYSEC + int(window_end_hour) * HOURSEC
    if first < start:
        first += -(-(start - first) // step) * step
    else:
        first -= ((first - start) // step) * step
    if first > end:
        return np.empty(0, dtype=np.int64)

    count = (end - first) // step + 1
    if count > max_windows:
        raise ValidationError(
            f"requested span yields {count} windows, more than the limit of {max_windows}"
        )
    return first + step * np.arange(count, dtype=np.int64)


def _series(rows: Sequence[ObsRow], attr: str) -> tuple[np.ndarray, np.ndarray]:
    """Ascending (times, values) arrays for the non-null values of *attr*."""
    pairs = [
        (r.valid_time, v)
        for r in rows
        if (v := getattr(r, attr)) is not None and not math.isnan(v)
    ]
    if not pairs:
        return np.empty(0, dtype=np.int64), np.empty(0, dtype=np.float64)
    times, values = zip(*pairs)
    return np.asarray(times, dtype=np.int64), np.asarray(values, dtype=np.float64)


# ── Max / min temperature ─────────────────────────────────────────────────

def aggregate_temperature(
    rows: Sequence[ObsRow],
    time_range: TimeRange,
    mode: Extreme,
    window_end_hour: int = 0,
    window_length: float = 24,
    increment_hours: float = 24,
) -> list[TemperatureObservation]:
    """Max or min temperature per window ``[end - window_length, end]``.

    Parameters
    ----------
    rows : ascending stored rows covering at least ``window_length`` hours
        before the range start.
    time_range : window ends are laid out inside this range.
    mode : "max" or "min".

    Returns
    -------
    One TemperatureObservation per window; windows without samples carry NaN.
    Empty list when *rows* has no temperatures at all.
    """
    if mode not in ("max", "min"):
        raise ValidationError(f"mode must be 'max' or 'min', got {mode!r}")
    length = _hours_to_seconds("window_length", window_length)
    ends = window_ends(time_range, window_end_hour, increment_hours)

    times, values = _series(rows, "t_f")
    if len(times) == 0:
        return []

    reduce = np.max if mode == "max" else np.min
    n = len(times)
    lo = hi = 0
    out: list[TemperatureObservation] = []
    for end in ends.tolist():
        start = end - length
        while lo < n and times[lo] < start:
            lo += 1
        hi = max(hi, lo)
        while hi < n and times[hi] <= end:
            hi += 1
        value = float(reduce(values[lo:hi])) if hi > lo else NO_DATA
        out.append(TemperatureObservation(from_epoch(end), value))
    return out


# ── Precipitation ──────────────────────────────────────────────────────────

def accumulate_hourly(times: Sequence[int], values: Sequence[float]) -> float:
    """Sum one window's ascending precipitation samples.

    Only the last sample of each UTC hour counts. Values strictly between 0
    and TRACE_UPPER_IN mark a trace and add nothing; a total below
    TRACE_TOTAL_IN with a trace seen is reported as TRACE_SENTINEL_IN.
    Returns NaN for an empty window.
    """
    if len(times) == 0:
        return NO_DATA

    total = 0.0
    trace = False
    cur_hour: int | None = None
    cur_value = 0.0
    for t, v in zip(times, values):
        if 0.0 < v < TRACE_UPPER_IN:
            trace = True
        hour = t // HOURSEC
        if hour != cur_hour:
            if cur_hour is not None and not 0.0 < cur_value < TRACE_UPPER_IN:
                total += cur_value
            cur_hour = hour
        cur_value = v
    if not 0.0 < cur_value < TRACE_UPPER_IN:
        total += cur_value

    if total < TRACE_TOTAL_IN and trace:
        return TRACE_SENTINEL_IN
    return total


def aggregate_precipitation(
    rows: Sequence[ObsRow],
    time_range: TimeRange,
    window_length: float,
    window_increment: float,
    window_end_hour: int = 0,
) -> list[PrecipitationObservation]:
    """Precipitation accumulated over each window ``(end - window_length, end]``.

    A one-hour accumulation reported at time t covers the hour before t, so a
    sample exactly on the window start belongs to the previous window.
    """
    length = _hours_to_seconds("window_length", window_length)
    ends = window_ends(time_range, window_end_hour, window_increment)

    times, values = _series(rows, "precip_in")
    if len(times) == 0:
        return []

    n = len(times)
    lo = hi = 0
    out: list[PrecipitationObservation] = []
    for end in ends.tolist():
        start = end - length
        while lo < n and times[lo] <= start:
            lo += 1
        hi = max(hi, lo)
        while hi < n and times[hi] <= end:
            hi += 1
        value = accumulate_hourly(times[lo:hi].tolist(), values[lo:hi].tolist())
        out.append(PrecipitationObservation(from_epoch(end), value))
    return out


def to_frame(
    observations: Sequence[TemperatureObservation | PrecipitationObservation],
) -> pd.DataFrame:
    """Return a DataFrame with columns valid_time (UTC) and value."""
    return pd.DataFrame(
        {
            "valid_time": pd.to_datetime([o.valid_time for o in observations], utc=True),
            "value": pd.Series([o.value for o in observations], dtype="float64"),
        }
    )
