"""Ingestion pipeline: field events → validated rows → transactional upsert.

Each download owns exactly one ``IngestPipeline``. The first non-comment row
is the header and assigns column roles; every later row is interpreted
independently and either upserted or discarded. Row-level problems never
abort the download; only store failures do, and those roll back everything
written so far.
"""

from __future__ import annotations

import enum
import math
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterable, Iterator

from wxobs.core.time_range import to_epoch
from wxobs.errors import RowParseError

if TYPE_CHECKING:
    from wxobs.storage.db import InsertStatement, ObsDatabase

VALID_TIME_TOKENS = ("valid_time", "date_time")
TEMPERATURE_TOKENS = ("air_temp",)
PRECIP_TOKENS = ("precip_accum",)

_VALID_TIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


class IngestPhase(enum.Enum):
    AWAITING_HEADER = "awaiting_header"
    PARSING_ROWS = "parsing_rows"
    ERROR = "error"
    DONE = "done"


@dataclass
class ColumnRoles:
    """Header-derived column indexes; None when the header lacked the column."""

    valid_time: int | None = None
    temperature: int | None = None
    precipitation: int | None = None

    def assign(self, index: int, header: str) -> None:
        name = header.lower()
        if self.valid_time is None and any(tok in name for tok in VALID_TIME_TOKENS):
            self.valid_time = index
        elif self.temperature is None and any(tok in name for tok in TEMPERATURE_TOKENS):
            self.temperature = index
        elif self.precipitation is None and any(tok in name for tok in PRECIP_TOKENS):
            self.precipitation = index


@dataclass
class IngestState:
    """Mutable per-download state: roles plus the current row's scratch values."""

    roles: ColumnRoles = field(default_factory=ColumnRoles)
    header_parsed: bool = False
    col: int = 0
    valid_time: int = 0
    t_f: float = math.nan
    p_in: float = math.nan
    comment: bool = False
    error: RowParseError | None = None

    def reset_row(self) -> None:
        self.col = 0
        self.valid_time = 0
        self.t_f = math.nan
        self.p_in = math.nan
        self.comment = False
        self.error = None


@dataclass
class IngestSummary:
    rows_inserted: int = 0
    rows_rejected: int = 0
    comment_rows: int = 0


# ── Field parsers ──────────────────────────────────────────────────────────

def parse_valid_time(text: str | None) -> int:
    """ISO-8601 UTC timestamp → Unix seconds."""
    if text is None:
        raise RowParseError("missing valid time")
    text = text.strip()
    try:
        parsed = datetime.strptime(text, _VALID_TIME_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise RowParseError(f"bad valid time {text!r}") from exc
    return to_epoch(parsed)


def parse_decimal(text: str | None) -> float:
    """Finite decimal value; missing, unparseable, NaN or infinite text is an error."""
    if text is None:
        raise RowParseError("missing value")
    try:
        value = float(text)
    except ValueError as exc:
        raise RowParseError(f"bad decimal {text!r}") from exc
    if not math.isfinite(value):
        raise RowParseError(f"non-finite decimal {text!r}")
    return value


def parse_decimal_missing_is_zero(text: str | None) -> float:
    """Decimal value where an absent field means 0.0; malformed text is still an error."""
    if text is None:
        return 0.0
    return parse_decimal(text)


# ── Pipeline ───────────────────────────────────────────────────────────────

class IngestPipeline:
    """Consumes field events for one site and upserts each valid row."""

    def __init__(self, insert: InsertStatement, site: str):
        self.insert = insert
        self.site = site.lower()
        self.state = IngestState()
        self.summary = IngestSummary()
        self.phase = IngestPhase.AWAITING_HEADER

    def field(self, text: str | None) -> None:
        st = self.state
        if st.col == 0 and text is not None and text.startswith("#"):
            st.comment = True
        if st.comment or st.error is not None:
            st.col += 1
            return

        if not st.header_parsed:
            if text is not None:
                st.roles.assign(st.col, text)
        else:
            try:
                self._parse_field(text)
            except RowParseError as exc:
                exc.column = st.col
                st.error = exc
        st.col += 1

    def _parse_field(self, text: str | None) -> None:
        st = self.state
        roles = st.roles
        if st.col == roles.valid_time:
            st.valid_time = parse_valid_time(text)
        elif st.col == roles.temperature:
            st.t_f = parse_decimal(text)
        elif st.col == roles.precipitation:
            st.p_in = parse_decimal_missing_is_zero(text)

    def end_row(self) -> None:
        st = self.state
        if st.comment:
            self.summary.comment_rows += 1
        elif not st.header_parsed:
            st.header_parsed = True
            self.phase = IngestPhase.PARSING_ROWS
        else:
            if st.roles.precipitation is None and st.error is None:
                st.p_in = 0.0
            if self._row_is_valid():
                self.insert.execute(st.valid_time, self.site, st.t_f, st.p_in)
                self.summary.rows_inserted += 1
            else:
                self.summary.rows_rejected += 1
        st.reset_row()

    def _row_is_valid(self) -> bool:
        st = self.state
        return (
            st.error is None
            and not math.isnan(st.t_f)
            and not math.isnan(st.p_in)
            and st.valid_time != 0
        )

    def feed_rows(self, rows: Iterable[Iterable[str | None]]) -> IngestSummary:
        """Pull-style entry point: push every field of every row, then end the row."""
        for row in rows:
            for value in row:
                self.field(value)
            self.end_row()
        return self.summary


@contextmanager
def ingestion(db: ObsDatabase, site: str) -> Iterator[IngestPipeline]:
    """Open a transaction and insert statement, yield a pipeline, then finalize.

    Commits when the block exits normally; any exception, a failed commit
    included, rolls the whole download back and propagates. Failing to begin
    the transaction or prepare the statement raises StoreError before any
    data flows.
    """
    db.begin()
    pipeline: IngestPipeline | None = None
    try:
        pipeline = IngestPipeline(db.prepare_insert(), site)
        yield pipeline
        db.commit()
    except BaseException:
        if pipeline is not None:
            pipeline.phase = IngestPhase.ERROR
        db.rollback()
        raise
    pipeline.phase = IngestPhase.DONE
