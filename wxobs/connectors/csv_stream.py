"""Incremental CSV tokenizer: byte chunks in, field / end-of-row events out.

The download body arrives in arbitrary chunks, so a record can be split
anywhere (including inside a multi-byte character or a quoted field). The
stream buffers the incomplete tail and only tokenizes complete records.
Record boundaries are found by quote parity, which assumes RFC 4180 quoting
(a literal quote inside a quoted field is doubled); the fields themselves are
split by ``csv.reader``. Empty fields are reported as ``None``.
"""

from __future__ import annotations

import codecs
import csv
from typing import Protocol


class FieldConsumer(Protocol):
    """Receiver of field events, e.g. the ingestion pipeline."""

    def field(self, text: str | None) -> None: ...

    def end_row(self) -> None: ...


class CsvFieldStream:
    """Push-based tokenizer feeding a FieldConsumer."""

    def __init__(self, consumer: FieldConsumer, encoding: str = "utf-8"):
        self.consumer = consumer
        self._decoder = codecs.getincrementaldecoder(encoding)()
        self._pending = ""        # text after the last complete record
        self.error: str | None = None
        self.rows_emitted = 0

    def feed(self, chunk: bytes) -> int:
        """Tokenize *chunk*; return the number of bytes consumed.

        Anything less than ``len(chunk)`` means the stream is broken and
        ``error`` describes why. Once broken, every later call consumes 0.
        """
        if self.error is not None:
            return 0
        try:
            text = self._decoder.decode(chunk)
        except UnicodeDecodeError as exc:
            self.error = f"undecodable response body: {exc}"
            return 0

        self._pending += text
        records = self._take_complete_records()
        if records and not self._emit(records):
            return 0
        return len(chunk)

    def close(self) -> bool:
        """Flush the final record (one without a trailing newline).

        Returns False if the stream ended in an inconsistent state.
        """
        if self.error is not None:
            return False
        try:
            self._pending += self._decoder.decode(b"", final=True)
        except UnicodeDecodeError as exc:
            self.error = f"truncated character at end of body: {exc}"
            return False
        tail, self._pending = self._pending, ""
        if _open_quote(tail):
            self.error = "unterminated quoted field at end of body"
            return False
        if tail.strip("\r\n"):
            return self._emit([tail])
        return True

    # ── internals ──────────────────────────────────────────────────────────

    def _take_complete_records(self) -> list[str]:
        """Split off whole lines, keeping newlines that sit inside quotes."""
        pieces = self._pending.split("\n")
        self._pending = pieces.pop()
        records: list[str] = []
        current: str | None = None
        for piece in pieces:
            current = piece if current is None else current + "\n" + piece
            if not _open_quote(current):
                records.append(current)
                current = None
        if current is not None:
            self._pending = current + "\n" + self._pending
        return records

    def _emit(self, records: list[str]) -> bool:
        try:
            for row in csv.reader(records):
                if not row:
                    continue
                for value in row:
                    self.consumer.field(value if value != "" else None)
                self.consumer.end_row()
                self.rows_emitted += 1
        except csv.Error as exc:
            self.error = f"malformed csv: {exc}"
            return False
        return True


def _open_quote(text: str) -> bool:
    """True if *text* ends inside a quoted field."""
    return text.count('"') % 2 == 1
