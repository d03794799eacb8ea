"""Exception hierarchy for the observation cache."""

from __future__ import annotations


class WxObsError(Exception):
    """Base error for all cache failures."""


class ValidationError(WxObsError, ValueError):
    """Malformed range or parameters, raised before any I/O."""


class StoreError(WxObsError):
    """Open, read, write or transaction failure in the local store."""


class TransportError(WxObsError):
    """Network or remote failure while downloading observations."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class StreamParseError(TransportError):
    """The response body could not be decoded or tokenized."""


class RowParseError(WxObsError):
    """A single record could not be interpreted; the row is discarded."""

    def __init__(self, message: str, column: int | None = None):
        super().__init__(message)
        self.column = column
