"""TimeRange value type and UTC instant helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from wxobs.errors import ValidationError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def as_utc(when: datetime) -> datetime:
    """Return *when* as a tz-aware UTC datetime (naive values are taken as UTC)."""
    if when.tzinfo is None:
        return when.replace(tzinfo=timezone.utc)
    return when.astimezone(timezone.utc)


def to_epoch(when: datetime) -> int:
    """Whole Unix seconds for *when*."""
    return int(as_utc(when).timestamp())


def from_epoch(seconds: int | float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


@dataclass(frozen=True)
class TimeRange:
    """Closed interval [start, end] of UTC instants with start <= end."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        start = as_utc(self.start)
        end = as_utc(self.end)
        if start > end:
            raise ValidationError(f"backwards time range: start {start} > end {end}")
        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @classmethod
    def build(cls, start: datetime, end: datetime) -> "TimeRange":
        """Non-raising constructor: a backwards interval yields the empty range."""
        if as_utc(start) > as_utc(end):
            return cls.empty()
        return cls(start, end)

    @classmethod
    def empty(cls) -> "TimeRange":
        return cls(EPOCH, EPOCH)

    @classmethod
    def from_timestamps(cls, start: int, end: int) -> "TimeRange":
        return cls(from_epoch(start), from_epoch(end))

    @property
    def start_ts(self) -> int:
        return to_epoch(self.start)

    @property
    def end_ts(self) -> int:
        return to_epoch(self.end)

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def extend_start(self, hours: float) -> "TimeRange":
        """Return a copy whose start is moved *hours* earlier."""
        return TimeRange(self.start - timedelta(hours=hours), self.end)

    def clamp_end(self, latest: datetime) -> "TimeRange":
        """Return a copy whose end is no later than *latest* (never before start)."""
        latest = as_utc(latest)
        if latest >= self.end:
            return self
        return TimeRange(self.start, max(latest, self.start))

    def __str__(self) -> str:
        return (
            f"TimeRange [{self.start:%Y-%m-%d %H%M} -> {self.end:%Y-%m-%d %H%M}]"
        )
