"""Central configuration for the observation cache."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from wxobs.errors import ValidationError


HOURSEC = 3600
DAYSEC = 24 * HOURSEC

# Inventory
GAP_TOLERANCE_SECONDS: int = 4000   # slightly over one hourly report
MAX_MISSING_RANGES: int = 128

# Retention sweep on close
RETENTION_DAYS: int = 555

# Precipitation trace rule (inches)
TRACE_UPPER_IN: float = 0.01        # 0 < value < this → trace, not summed
TRACE_TOTAL_IN: float = 0.005       # totals below this may be reported as trace
TRACE_SENTINEL_IN: float = 0.001    # reported value for "trace observed"

# Upper bound on windows per query
MAX_WINDOWS: int = 1_000_000

# Remote source
SYNOPTIC_BASE_URL = "https://api.synopticdata.com/v2/stations/timeseries"
SYNOPTIC_VARS = ("air_temp", "precip_accum_one_hour")
DEFAULT_TIMEOUT: float = 120.0
DEFAULT_CHUNK_SIZE: int = 16 * 1024

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "obsdb" / "wxobs.sqlite"

ENV_API_KEY = "SYNOPTIC_API_KEY"
ENV_DB_PATH = "WXOBS_DB_PATH"


@dataclass
class StoreConfig:
    """Parameters for one ObsStore handle.

    ``api_key`` is only borrowed: it is passed through to the download
    request and never logged or persisted.
    """

    api_key: str | None = None
    db_path: Path = DEFAULT_DB_PATH
    base_url: str = SYNOPTIC_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    chunk_size: int = DEFAULT_CHUNK_SIZE
    gap_tolerance_seconds: int = GAP_TOLERANCE_SECONDS
    max_missing_ranges: int = MAX_MISSING_RANGES
    verbose: bool = False

    def validate(self) -> None:
        """Raise ValidationError on invalid settings."""
        if self.timeout <= 0:
            raise ValidationError(f"timeout must be positive, got {self.timeout}")
        if self.chunk_size <= 0:
            raise ValidationError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.gap_tolerance_seconds <= 0:
            raise ValidationError(
                f"gap_tolerance_seconds must be positive, got {self.gap_tolerance_seconds}"
            )
        if self.max_missing_ranges < 1:
            raise ValidationError(
                f"max_missing_ranges must be >= 1, got {self.max_missing_ranges}"
            )

    @classmethod
    def from_env(cls, **overrides) -> "StoreConfig":
        """Build a config from SYNOPTIC_API_KEY / WXOBS_DB_PATH, then apply overrides."""
        cfg = cls(
            api_key=os.getenv(ENV_API_KEY) or None,
            db_path=Path(os.getenv(ENV_DB_PATH, str(DEFAULT_DB_PATH))),
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(cfg, key, value)
        return cfg
