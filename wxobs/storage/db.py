"""Local SQLite store for hourly observations, keyed by (site, valid_time)."""

from __future__ import annotations

import math
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, NamedTuple

from wxobs.config import DAYSEC, RETENTION_DAYS
from wxobs.core.time_range import TimeRange
from wxobs.errors import StoreError

_CREATE_SQL = """
CREATE TABLE IF NOT EXISTS obs (
  site       TEXT    NOT NULL, -- SynopticLabs site id, lowercase
  valid_time INTEGER NOT NULL, -- unix time stamp of valid time
  t_f        REAL,             -- temperature in Fahrenheit
  precip_in  REAL,             -- one hour precipitation in inches
  PRIMARY KEY (site, valid_time))
"""

_UPSERT_SQL = (
    "INSERT OR REPLACE INTO obs (valid_time, site, t_f, precip_in) VALUES (?, ?, ?, ?)"
)


def _log(verbose: bool, msg: str) -> None:
    """Emit a store diagnostic when verbose mode is on."""
    if verbose:
        import typer

        typer.echo(msg, err=True)


def _nullable(value: float | None) -> float | None:
    if value is None or math.isnan(value):
        return None
    return float(value)


class ObsRow(NamedTuple):
    """One persisted observation."""

    valid_time: int
    t_f: float | None
    precip_in: float | None


class InsertStatement:
    """Upsert bound to an open transaction; created by ObsDatabase.prepare_insert."""

    def __init__(self, db: "ObsDatabase"):
        self._db = db
        self.rows_written = 0

    def execute(
        self,
        valid_time: int,
        site: str,
        t_f: float | None,
        precip_in: float | None,
    ) -> None:
        if not self._db.in_transaction:
            raise StoreError("insert statement used outside of a transaction")
        try:
            self._db.connection.execute(
                _UPSERT_SQL, (int(valid_time), site, _nullable(t_f), _nullable(precip_in))
            )
        except sqlite3.Error as exc:
            raise StoreError(f"error inserting {site}@{valid_time}: {exc}") from exc
        self.rows_written += 1


class ObsDatabase:
    """Handle on the on-disk observation table.

    Transactions are explicit: the connection runs in autocommit mode and
    ``begin``/``commit``/``rollback`` issue the SQL themselves.
    """

    def __init__(self, connection: sqlite3.Connection, path: Path | str, verbose: bool = False):
        self._conn: sqlite3.Connection | None = connection
        self.path = path
        self.verbose = verbose
        self.in_transaction = False

    # ── Lifecycle ──────────────────────────────────────────────────────────

    @classmethod
    def open_create(cls, path: Path | str, verbose: bool = False) -> "ObsDatabase":
        """Open the database at *path*, creating parent dirs, file and table as needed."""
        if str(path) != ":memory:":
            try:
                Path(path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise StoreError(f"unable to create cache directory for {path}: {exc}") from exc

        conn = None
        try:
            conn = sqlite3.connect(str(path), isolation_level=None)
            conn.execute(_CREATE_SQL)
        except sqlite3.Error as exc:
            if conn is not None:
                conn.close()
            raise StoreError(f"unable to open download cache {path}: {exc}") from exc

        _log(verbose, f"  [store open] {path}")
        return cls(conn, path, verbose)

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("database is closed")
        return self._conn

    @property
    def closed(self) -> bool:
        return self._conn is None

    def close(self, now: float | None = None) -> int:
        """Delete rows older than the retention horizon, then close.

        The connection is released even when the sweep fails. Returns the
        number of rows removed by the sweep.
        """
        conn = self.connection
        try:
            if self.in_transaction:
                self.rollback()
            removed = self.purge_older_than(RETENTION_DAYS, now=now)
        finally:
            self._conn = None
            try:
                conn.close()
            except sqlite3.Error as exc:
                raise StoreError(f"error closing sqlite3 database: {exc}") from exc
        _log(self.verbose, f"  [store close] removed={removed}")
        return removed

    def purge_older_than(self, days: int, now: float | None = None) -> int:
        """Delete every row with valid_time before ``now - days``."""
        now = time.time() if now is None else now
        too_old = int(now) - days * DAYSEC
        try:
            cur = self.connection.execute("DELETE FROM obs WHERE valid_time < ?", (too_old,))
        except sqlite3.Error as exc:
            raise StoreError(f"error executing retention sweep: {exc}") from exc
        return max(cur.rowcount, 0)

    # ── Transactions ───────────────────────────────────────────────────────

    def begin(self) -> None:
        if self.in_transaction:
            raise StoreError("transaction already in progress")
        try:
            self.connection.execute("BEGIN")
        except sqlite3.Error as exc:
            raise StoreError(f"error starting transaction: {exc}") from exc
        self.in_transaction = True

    def commit(self) -> None:
        try:
            self.connection.execute("COMMIT")
        except sqlite3.Error as exc:
            raise StoreError(f"error committing transaction: {exc}") from exc
        self.in_transaction = False

    def rollback(self) -> None:
        try:
            self.connection.execute("ROLLBACK")
        except sqlite3.Error as exc:
            raise StoreError(f"error rolling back transaction: {exc}") from exc
        finally:
            self.in_transaction = False

    @contextmanager
    def transaction(self) -> Iterator["ObsDatabase"]:
        """Commit on success; roll back and re-raise on any exception, including a failed commit."""
        self.begin()
        try:
            yield self
            self.commit()
        except BaseException:
            self.rollback()
            raise

    def prepare_insert(self) -> InsertStatement:
        """Return the upsert statement for the current transaction."""
        if not self.in_transaction:
            raise StoreError("insert statement requires an open transaction")
        return InsertStatement(self)

    # ── Reads ──────────────────────────────────────────────────────────────

    def _select(self, sql: str, params: tuple) -> list[tuple]:
        try:
            return self.connection.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(f"error executing select: {exc}") from exc

    def valid_times(self, site: str, time_range: TimeRange) -> list[int]:
        """Ascending stored valid times for *site* within the range (inclusive)."""
        rows = self._select(
            "SELECT valid_time FROM obs "
            "WHERE site = ? AND valid_time >= ? AND valid_time <= ? "
            "ORDER BY valid_time ASC",
            (site, time_range.start_ts, time_range.end_ts),
        )
        return [r[0] for r in rows]

    def range_scan(self, site: str, time_range: TimeRange) -> list[ObsRow]:
        """Ascending observation rows for *site* within the range (inclusive)."""
        rows = self._select(
            "SELECT valid_time, t_f, precip_in FROM obs "
            "WHERE site = ? AND valid_time >= ? AND valid_time <= ? "
            "ORDER BY valid_time ASC",
            (site, time_range.start_ts, time_range.end_ts),
        )
        return [ObsRow(*r) for r in rows]

    def count_in_range(self, site: str, time_range: TimeRange) -> int:
        rows = self._select(
            "SELECT COUNT(*) FROM obs WHERE site = ? AND valid_time >= ? AND valid_time <= ?",
            (site, time_range.start_ts, time_range.end_ts),
        )
        return int(rows[0][0])

    def count(self) -> int:
        return int(self._select("SELECT COUNT(*) FROM obs", ())[0][0])

    # ── Writes ─────────────────────────────────────────────────────────────

    def upsert(
        self,
        valid_time: int,
        site: str,
        t_f: float | None,
        precip_in: float | None,
    ) -> None:
        """Single-row upsert in its own transaction."""
        with self.transaction():
            self.prepare_insert().execute(valid_time, site, t_f, precip_in)

    def __enter__(self) -> "ObsDatabase":
        return self

    def __exit__(self, *exc_info) -> None:
        if not self.closed:
            self.close()
