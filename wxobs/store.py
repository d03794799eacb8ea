"""ObsStore: query entry points over the local cache with download back-fill."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

import requests

from wxobs.config import StoreConfig
from wxobs.connectors import synoptic
from wxobs.core import aggregate
from wxobs.core.aggregate import PrecipitationObservation, TemperatureObservation
from wxobs.core.inventory import InventoryReport, have_inventory
from wxobs.core.time_range import TimeRange
from wxobs.errors import TransportError, ValidationError
from wxobs.storage.db import ObsDatabase


def _log(verbose: bool, msg: str) -> None:
    """Emit a query diagnostic when verbose mode is on."""
    if verbose:
        import typer

        typer.echo(msg, err=True)


def _query_range(start: datetime, end: datetime) -> TimeRange:
    tr = TimeRange.build(start, end)
    if tr.is_empty:
        raise ValidationError(f"query needs start < end, got {start} .. {end}")
    return tr


def _normalize_site(site: str) -> str:
    if not site or not site.strip():
        raise ValidationError("site is required")
    return site.strip().lower()


class ObsStore:
    """Local observation cache that downloads missing hourly data on demand.

    Every query runs the same strict sequence: inventory check, download of
    each missing range (one transaction each), re-read, aggregation. Errors
    are raised; a failed query never returns partial results.
    """

    def __init__(
        self,
        config: StoreConfig,
        db: ObsDatabase | None = None,
        session: requests.Session | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        config.validate()
        self.config = config
        self.db = db if db is not None else ObsDatabase.open_create(config.db_path, config.verbose)
        self._session = session
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def connect(cls, api_key: str | None = None, **kwargs: Any) -> "ObsStore":
        """Open the default store, reading unset options from the environment."""
        return cls(StoreConfig.from_env(api_key=api_key, **kwargs))

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = synoptic.new_session()
        return self._session

    def close(self) -> int:
        """Close the database (running the retention sweep) and the HTTP session."""
        removed = 0
        if not self.db.closed:
            removed = self.db.close()
        if self._session is not None:
            self._session.close()
            self._session = None
        return removed

    def __enter__(self) -> "ObsStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ── Inventory + back-fill ──────────────────────────────────────────────

    def inventory(self, site: str, start: datetime, end: datetime) -> InventoryReport:
        """Report missing ranges for *site* without downloading anything."""
        return have_inventory(
            self.db,
            _normalize_site(site),
            _query_range(start, end),
            self.config.gap_tolerance_seconds,
            self.config.max_missing_ranges,
        )

    def _ensure_hourlies(self, site: str, need: TimeRange) -> None:
        """Download every missing sub-range of *need* into the local store."""
        need = need.clamp_end(self._clock())
        if need.is_empty:
            return
        report = have_inventory(
            self.db,
            site,
            need,
            self.config.gap_tolerance_seconds,
            self.config.max_missing_ranges,
        )
        verbose = self.config.verbose
        if report.sufficient:
            _log(verbose, f"  [inventory ok] site={site} {need}")
            return
        _log(verbose, f"  [inventory] site={site} missing={len(report.missing)} ranges")
        if report.truncated:
            _log(verbose, "  [inventory truncated] remaining gaps are fetched on a later query")
        if not self.config.api_key:
            raise TransportError(
                "an API key is required to download missing observations "
                f"for {site} ({len(report.missing)} missing ranges)"
            )
        for missing in report.missing:
            synoptic.download(
                self.db,
                self.session,
                self.config.api_key,
                site,
                missing,
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                chunk_size=self.config.chunk_size,
                verbose=verbose,
            )

    # ── Queries ────────────────────────────────────────────────────────────

    def _query_temperature(
        self,
        mode: aggregate.Extreme,
        site: str,
        start: datetime,
        end: datetime,
        window_end: int,
        window_length: float,
    ) -> list[TemperatureObservation]:
        site = _normalize_site(site)
        tr = _query_range(start, end)
        # Validates the window parameters before any I/O.
        aggregate.window_ends(tr, window_end, 24)
        if not 0 < window_length < float("inf"):
            raise ValidationError(f"window_length must be finite and > 0, got {window_length}")

        # Enough hourlies for ALL windows ending in the range.
        need = tr.extend_start(window_length)
        self._ensure_hourlies(site, need)
        rows = self.db.range_scan(site, need)
        return aggregate.aggregate_temperature(
            rows, tr, mode, window_end_hour=window_end, window_length=window_length
        )

    def query_max_temperature(
        self,
        site: str,
        start: datetime,
        end: datetime,
        window_end: int = 0,
        window_length: float = 24,
    ) -> list[TemperatureObservation]:
        """Maximum temperature per window; windows advance by 24 hours.

        Each result's valid_time is the END of its window, ``window_end`` hours
        after a UTC midnight.
        """
        return self._query_temperature("max", site, start, end, window_end, window_length)

    def query_min_temperature(
        self,
        site: str,
        start: datetime,
        end: datetime,
        window_end: int = 0,
        window_length: float = 24,
    ) -> list[TemperatureObservation]:
        """Minimum temperature per window; see query_max_temperature."""
        return self._query_temperature("min", site, start, end, window_end, window_length)

    def query_precipitation(
        self,
        site: str,
        start: datetime,
        end: datetime,
        window_length: float,
        window_increment: float,
        window_end: int = 0,
    ) -> list[PrecipitationObservation]:
        """Accumulated precipitation per window of ``window_length`` hours.

        Windows advance by ``window_increment`` hours and are aligned so that
        one of them ends ``window_end`` hours after a UTC midnight.
        """
        site = _normalize_site(site)
        tr = _query_range(start, end)
        aggregate.window_ends(tr, window_end, window_increment)
        if not 0 < window_length < float("inf"):
            raise ValidationError(f"window_length must be finite and > 0, got {window_length}")

        need = tr.extend_start(window_length)
        self._ensure_hourlies(site, need)
        rows = self.db.range_scan(site, need)
        return aggregate.aggregate_precipitation(
            rows, tr, window_length, window_increment, window_end_hour=window_end
        )
