"""Tests for windowed aggregation (wxobs/core/aggregate.py)."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd
import pytest

from wxobs.core.aggregate import (
    TemperatureObservation,
    accumulate_hourly,
    aggregate_precipitation,
    aggregate_temperature,
    to_frame,
    window_ends,
)
from wxobs.core.time_range import TimeRange, to_epoch
from wxobs.errors import ValidationError
from wxobs.storage.db import ObsRow

UTC = timezone.utc
JAN1 = datetime(2024, 1, 1, tzinfo=UTC)
H = 3600


def _at(hours: float) -> int:
    """Unix seconds *hours* after 2024-01-01 00:00 UTC."""
    return to_epoch(JAN1) + int(hours * H)


def _temps(*pairs: tuple[float, float]) -> list[ObsRow]:
    return [ObsRow(_at(h), t, 0.0) for h, t in pairs]


def _precip(*pairs: tuple[float, float]) -> list[ObsRow]:
    return [ObsRow(_at(h), 40.0, p) for h, p in pairs]


def _range(start_h: float, end_h: float) -> TimeRange:
    return TimeRange(JAN1 + timedelta(hours=start_h), JAN1 + timedelta(hours=end_h))


# ── Window layout ──────────────────────────────────────────────────────────


class TestWindowEnds:
    def test_daily_midnight_ends(self):
        ends = window_ends(_range(6, 72), window_end_hour=0, increment_hours=24)
        assert ends.tolist() == [_at(24), _at(48), _at(72)]
        assert ends.dtype == np.int64

    def test_end_hour_offset(self):
        ends = window_ends(_range(0, 48), window_end_hour=7, increment_hours=24)
        assert ends.tolist() == [_at(7), _at(31)]

    def test_first_end_on_range_start(self):
        ends = window_ends(_range(0, 12), window_end_hour=0, increment_hours=6)
        assert ends.tolist() == [_at(0), _at(6), _at(12)]

    def test_hourly_ends_before_aligned_hour(self):
        """An end hour later in the day still yields every hourly end from the range start."""
        ends = window_ends(_range(0, 23), window_end_hour=12, increment_hours=1)
        assert ends.size == 24
        assert ends[0] == _at(0)
        assert ends[-1] == _at(23)

    def test_six_hour_ends_aligned_to_offset(self):
        ends = window_ends(_range(1, 24), window_end_hour=15, increment_hours=6)
        assert ends.tolist() == [_at(3), _at(9), _at(15), _at(21)]

    def test_no_end_inside_range(self):
        assert window_ends(_range(1, 5), window_end_hour=0, increment_hours=24).size == 0

    def test_empty_range_rejected(self):
        with pytest.raises(ValidationError):
            window_ends(_range(3, 3), 0, 24)

    @pytest.mark.parametrize("hour", [-1, 25])
    def test_bad_hour_rejected(self, hour):
        with pytest.raises(ValidationError):
            window_ends(_range(0, 48), hour, 24)

    @pytest.mark.parametrize("inc", [0, -6, float("nan"), float("inf")])
    def test_bad_increment_rejected(self, inc):
        with pytest.raises(ValidationError):
            window_ends(_range(0, 48), 0, inc)

    def test_window_cap_checked_before_allocation(self):
        with pytest.raises(ValidationError, match="limit"):
            window_ends(_range(0, 24 * 365), 0, 1, max_windows=100)

    def test_cap_allows_exact_limit(self):
        assert window_ends(_range(0, 99), 0, 1, max_windows=100).size == 100


# ── Temperature extremes ───────────────────────────────────────────────────


class TestTemperature:
    ROWS = _temps((22, 5.0), (23, 9.0), (24, 3.0))

    def test_three_hour_window_max(self):
        out = aggregate_temperature(self.ROWS, _range(23, 24), "max", 0, window_length=3)
        assert out == [TemperatureObservation(JAN1 + timedelta(days=1), 9.0)]

    def test_three_hour_window_min(self):
        out = aggregate_temperature(self.ROWS, _range(23, 24), "min", 0, window_length=3)
        assert [o.value for o in out] == [3.0]

    def test_window_is_closed_on_both_ends(self):
        rows = _temps((22, 12.0), (23, 9.0), (24, 3.0))
        out = aggregate_temperature(rows, _range(23, 24), "max", 0, window_length=2)
        assert out[0].value == 12.0          # 22:00 sits exactly on the window start
        out = aggregate_temperature(rows, _range(23, 24), "min", 0, window_length=1)
        assert out[0].value == 3.0

    def test_empty_window_is_nan(self):
        rows = _temps((1, 50.0), (80, 60.0))
        out = aggregate_temperature(rows, _range(1, 72), "max")
        assert out[0].value == 50.0
        assert math.isnan(out[1].value)
        assert math.isnan(out[2].value)

    def test_no_temperatures_returns_empty(self):
        rows = [ObsRow(_at(1), None, 0.0)]
        assert aggregate_temperature(rows, _range(0, 48), "max") == []

    def test_null_temperatures_skipped(self):
        rows = [ObsRow(_at(1), None, 0.0), ObsRow(_at(2), 41.0, 0.0), ObsRow(_at(3), None, 0.0)]
        out = aggregate_temperature(rows, _range(1, 24), "min")
        assert [o.value for o in out] == [41.0]

    def test_overlapping_windows(self):
        """48 h windows advancing by 24 h share samples between neighbours."""
        rows = _temps(*[(h, float(h)) for h in range(0, 97, 6)])
        out = aggregate_temperature(rows, _range(48, 96), "max", 0, window_length=48)
        assert [o.value for o in out] == [48.0, 72.0, 96.0]
        out = aggregate_temperature(rows, _range(48, 96), "min", 0, window_length=48)
        assert [o.value for o in out] == [0.0, 24.0, 48.0]

    def test_bad_mode(self):
        with pytest.raises(ValidationError):
            aggregate_temperature(self.ROWS, _range(23, 24), "mean")  # type: ignore[arg-type]

    def test_bad_length(self):
        with pytest.raises(ValidationError):
            aggregate_temperature(self.ROWS, _range(23, 24), "max", 0, window_length=0)


# ── Precipitation ──────────────────────────────────────────────────────────


class TestAccumulateHourly:
    def test_empty_is_nan(self):
        assert math.isnan(accumulate_hourly([], []))

    def test_sums_hours(self):
        assert accumulate_hourly([_at(1), _at(2)], [0.10, 0.25]) == pytest.approx(0.35)

    def test_last_sample_in_hour_wins(self):
        times = [_at(0) + 10 * 60, _at(0) + 50 * 60]
        assert accumulate_hourly(times, [0.10, 0.15]) == pytest.approx(0.15)

    def test_trace_only(self):
        assert accumulate_hourly([_at(1)], [0.005]) == pytest.approx(0.001)

    def test_trace_with_measurable_total(self):
        assert accumulate_hourly([_at(1), _at(2)], [0.005, 0.02]) == pytest.approx(0.02)

    def test_all_zero(self):
        assert accumulate_hourly([_at(1), _at(2)], [0.0, 0.0]) == 0.0


class TestPrecipitation:
    def test_same_hour_dedup_in_window(self):
        rows = [ObsRow(_at(0) + 10 * 60, 40.0, 0.10), ObsRow(_at(0) + 50 * 60, 40.0, 0.15)]
        out = aggregate_precipitation(rows, _range(0.5, 2), 24, 24, window_end_hour=1)
        assert len(out) == 1
        assert out[0].valid_time == JAN1 + timedelta(hours=1)
        assert out[0].value == pytest.approx(0.15)

    def test_window_start_is_exclusive(self):
        rows = _precip((0, 0.50), (1, 0.10), (2, 0.20))
        out = aggregate_precipitation(rows, _range(1, 2), window_length=2, window_increment=24,
                                      window_end_hour=2)
        assert out[0].value == pytest.approx(0.30)

    def test_consecutive_windows(self):
        rows = _precip(*[(h, 0.01) for h in range(1, 49)])
        out = aggregate_precipitation(rows, _range(0, 48), window_length=24, window_increment=24)
        assert len(out) == 3
        assert math.isnan(out[0].value)         # nothing in (-24h, 0]
        assert out[1].value == pytest.approx(0.24)
        assert out[2].value == pytest.approx(0.24)

    def test_hourly_windows_cover_whole_day_with_late_end_hour(self):
        rows = _precip(*[(h, 0.02) for h in range(0, 24)])
        out = aggregate_precipitation(rows, _range(0, 23), window_length=1, window_increment=1,
                                      window_end_hour=12)
        assert len(out) == 24
        assert out[0].valid_time == JAN1
        assert [o.value for o in out] == pytest.approx([0.02] * 24)

    def test_trace_window(self):
        rows = _precip((3, 0.005))
        out = aggregate_precipitation(rows, _range(1, 24), 24, 24)
        assert out[0].value == pytest.approx(0.001)

    def test_no_precip_returns_empty(self):
        rows = [ObsRow(_at(1), 40.0, None)]
        assert aggregate_precipitation(rows, _range(0, 24), 24, 24) == []

    def test_bad_increment(self):
        with pytest.raises(ValidationError):
            aggregate_precipitation(_precip((1, 0.1)), _range(0, 24), 24, 0)


# ── DataFrame view ─────────────────────────────────────────────────────────


class TestToFrame:
    def test_columns_and_values(self):
        obs = [
            TemperatureObservation(JAN1, 30.0),
            TemperatureObservation(JAN1 + timedelta(days=1), float("nan")),
        ]
        frame = to_frame(obs)
        assert list(frame.columns) == ["valid_time", "value"]
        assert frame["valid_time"].iloc[0] == pd.Timestamp("2024-01-01", tz="UTC")
        assert frame["value"].iloc[0] == 30.0
        assert frame["value"].isna().iloc[1]

    def test_empty(self):
        frame = to_frame([])
        assert frame.empty
        assert list(frame.columns) == ["valid_time", "value"]
