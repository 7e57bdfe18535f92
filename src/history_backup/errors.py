from __future__ import annotations

import sqlite3

from history_backup.models import PersistResult

_LOCKED_CODES = {sqlite3.SQLITE_BUSY, sqlite3.SQLITE_LOCKED}


class HistoryBackupError(Exception):
    """Base class for errors surfaced to callers.

    ``client_error`` is a coarse classification for presentation layers:
    True when the input was at fault, False when the storage layer was.
    """

    client_error = False


class UnsupportedSource(HistoryBackupError):
    """Raised when a timestamp conversion is asked for an unknown family."""

    client_error = True


class UnrecognizedSource(HistoryBackupError):
    """Raised when a history file matches none of the known schemas."""

    client_error = True


class ConversionOverflow(HistoryBackupError):
    """Raised when a converted timestamp does not fit a signed 64-bit integer."""


class LockedSource(HistoryBackupError):
    """Raised when a history file is busy or locked by another process."""


class StorageFault(HistoryBackupError):
    """Raised for any other database error.

    When raised from a batched write, ``partial`` carries the counts of the
    batches committed before the failure.
    """

    def __init__(self, message: str, *, partial: PersistResult | None = None) -> None:
        super().__init__(message)
        self.partial = partial


def classify_sqlite_error(exc: sqlite3.Error, context: str) -> HistoryBackupError:
    code = getattr(exc, "sqlite_errorcode", None)
    if code is not None and (code & 0xFF) in _LOCKED_CODES:
        return LockedSource(f"{context}: {exc}")
    return StorageFault(f"{context}: {exc}")
