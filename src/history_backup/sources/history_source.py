from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from history_backup.errors import UnrecognizedSource, classify_sqlite_error
from history_backup.models import VisitDetail

from .base import BrowserFamily
from .registry import registered_families

logger = logging.getLogger(__name__)

# How long a read waits on a file locked by a running browser.
BUSY_TIMEOUT_SECONDS = 5.0


class HistorySource:
    """A browser history file opened read-only, with its detected family.

    The source never writes to the file. The connection is held until
    ``close()`` (or the end of a ``with`` block).
    """

    def __init__(self, path: str, family: BrowserFamily, connection: sqlite3.Connection) -> None:
        self.path = path
        self.family = family
        self._connection = connection

    @classmethod
    def open(cls, path: str) -> HistorySource:
        connection = _connect_read_only(path)
        try:
            family = detect_family(connection, path)
        except BaseException:
            connection.close()
            raise
        logger.debug("Detected %s history at %s", family.name, path)
        return cls(path, family, connection)

    @property
    def name(self) -> str:
        return self.family.name

    def select(self, inclusive_start: int, exclusive_end: int) -> list[VisitDetail]:
        start = self.family.to_native(inclusive_start)
        end = self.family.to_native(exclusive_end)
        logger.info("select from %s, start:%s, end:%s", self.name, start, end)

        sql = self.family.select_sql(self._title_expr())
        try:
            rows = self._connection.execute(sql, {"start": start, "end": end}).fetchall()
        except sqlite3.Error as exc:
            raise classify_sqlite_error(exc, f"select {self.path}") from exc

        visits: list[VisitDetail] = []
        for url, title, visit_time, visit_type in rows:
            visits.append(
                VisitDetail(
                    url=_decode_text(url, fallback=""),
                    title=_decode_title(title),
                    visit_time=self.family.to_canonical(visit_time),
                    visit_type=int(visit_type) if visit_type is not None else 0,
                )
            )
        return visits

    def close(self) -> None:
        self._connection.close()

    def __enter__(self) -> HistorySource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _title_expr(self) -> str:
        table, alias = self.family.title_source
        try:
            columns = {
                _decode_text(row[1], fallback="")
                for row in self._connection.execute(f'PRAGMA table_info("{table}")')
            }
        except sqlite3.Error as exc:
            raise classify_sqlite_error(exc, f"inspect {self.path}") from exc
        if "title" not in columns:
            return "''"
        return f"COALESCE({alias}.title, '')"


def detect_family(connection: sqlite3.Connection, path: str) -> BrowserFamily:
    _leave_wal_mode(connection, path)
    try:
        for family in registered_families():
            placeholders = ", ".join("?" for _ in family.required_tables)
            (found,) = connection.execute(
                f"SELECT count(*) FROM sqlite_master WHERE type = 'table' AND name IN ({placeholders})",
                family.required_tables,
            ).fetchone()
            if found == len(family.required_tables):
                return family
    except sqlite3.Error as exc:
        raise classify_sqlite_error(exc, f"detect {path}") from exc

    raise UnrecognizedSource(
        f"detect {path}: no known browser schema, only Safari/Firefox/Chrome are supported"
    )


def _leave_wal_mode(connection: sqlite3.Connection, path: str) -> None:
    # Opening a WAL-mode file from a second process can fail with
    # "unable to open database file" unless the journal mode is reset.
    # A read-only connection cannot switch a WAL file (SQLITE_IOERR_LOCK),
    # but it can still read it, so the file is probed as is.
    try:
        connection.execute("PRAGMA journal_mode = DELETE").fetchall()
    except sqlite3.Error as exc:
        logger.debug("Keep journal mode of %s: %s", path, exc)


def _connect_read_only(path: str) -> sqlite3.Connection:
    uri = f"{Path(path).absolute().as_uri()}?mode=ro"
    try:
        connection = sqlite3.connect(uri, uri=True, timeout=BUSY_TIMEOUT_SECONDS)
    except sqlite3.Error as exc:
        raise classify_sqlite_error(exc, f"open {path}") from exc
    # Decode per column so one badly encoded title does not fail the query.
    connection.text_factory = bytes
    return connection


def _decode_text(value: object, *, fallback: str) -> str:
    if value is None:
        return fallback
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _decode_title(value: object) -> str:
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return ""
    if isinstance(value, str):
        return value
    return ""
