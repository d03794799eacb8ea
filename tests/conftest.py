"""pytest configuration and shared fixtures.

Every test gets its own SQLite file under ``tmp_path``; nothing touches the
default cache in the user's home directory.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import requests

from wxobs.core.time_range import to_epoch
from wxobs.storage.db import ObsDatabase

T0 = datetime(2024, 3, 1, 0, 0, tzinfo=timezone.utc)


def seed_hourly(
    db: ObsDatabase,
    site: str,
    start: datetime,
    hours: int,
    t_f: float = 50.0,
    precip_in: float = 0.0,
) -> None:
    """Insert *hours* consecutive hourly rows beginning at *start*."""
    base = to_epoch(start)
    with db.transaction():
        stmt = db.prepare_insert()
        for i in range(hours):
            stmt.execute(base + i * 3600, site, t_f, precip_in)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "wxobs.sqlite"


@pytest.fixture
def db(db_path: Path):
    handle = ObsDatabase.open_create(db_path)
    yield handle
    if not handle.closed:
        handle.connection.close()


# ── Fake HTTP layer ────────────────────────────────────────────────────────

SYNOPTIC_HEADER = (
    "# STATION: KSLC\n"
    "# STATION NAME: Salt Lake City, Salt Lake City International Airport\n"
    "Station_ID,Date_Time,air_temp_set_1,precip_accum_one_hour_set_1\n"
    ",,Fahrenheit,Inches\n"
)


def synoptic_csv(start: datetime, hours: int, t_f: float = 50.0, precip_in: str = "") -> bytes:
    """Build a Synoptic-style CSV body with *hours* hourly rows from *start*."""
    lines = [SYNOPTIC_HEADER]
    for i in range(hours):
        when = start + timedelta(hours=i)
        lines.append(f"KSLC,{when:%Y-%m-%dT%H:%M:%SZ},{t_f + i},{precip_in}\n")
    return "".join(lines).encode("utf-8")


class FakeResponse:
    """Minimal stand-in for requests.Response with a streamed body."""

    def __init__(self, body: bytes = b"", status_code: int = 200, fail_after: int | None = None):
        self.body = body
        self.status_code = status_code
        self.fail_after = fail_after

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)

    def iter_content(self, chunk_size: int = 1):
        for n, i in enumerate(range(0, len(self.body), chunk_size)):
            if self.fail_after is not None and n >= self.fail_after:
                raise requests.ConnectionError("connection reset by peer")
            yield self.body[i:i + chunk_size]


class FakeSession:
    """Records requested URLs and replays queued responses in order."""

    def __init__(self, *responses: FakeResponse):
        self.responses = list(responses)
        self.urls: list[str] = []
        self.closed = False

    def get(self, url: str, stream: bool = False, timeout: float | None = None):
        self.urls.append(url)
        if not self.responses:
            raise AssertionError(f"unexpected request: {url}")
        return self.responses.pop(0)

    def close(self) -> None:
        self.closed = True


class CommitFailsConnection:
    """Wraps a sqlite3 connection so that COMMIT raises, as on a locked database."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def execute(self, sql: str, *params):
        if sql.strip().upper() == "COMMIT":
            raise sqlite3.OperationalError("database is locked")
        return self.conn.execute(sql, *params)

    def close(self) -> None:
        self.conn.close()
