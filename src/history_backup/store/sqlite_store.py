from __future__ import annotations

import logging
import sqlite3
import threading
from collections import Counter
from collections.abc import Iterable
from pathlib import Path
from typing import Any, NamedTuple

from history_backup.errors import HistoryBackupError, StorageFault
from history_backup.models import (
    ImportWatermark,
    PersistResult,
    UrlRecord,
    VisitDetail,
    VisitRecord,
)
from history_backup.utils.datetime_utils import ymd_midnight_ms
from history_backup.utils.url_utils import domain_from, strip_apostrophes

from .base import Store

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100

SCHEMA = """
CREATE TABLE IF NOT EXISTS onehistory_urls (
    id integer PRIMARY KEY AUTOINCREMENT,
    url text NOT NULL UNIQUE,
    title text
);

CREATE TABLE IF NOT EXISTS onehistory_visits (
    id integer PRIMARY KEY AUTOINCREMENT,
    item_id integer,
    visit_time integer,
    visit_type integer NOT NULL DEFAULT 0,
    UNIQUE(item_id, visit_time)
);

CREATE INDEX IF NOT EXISTS idx_onehistory_visits_visit_time
ON onehistory_visits (visit_time);

CREATE TABLE IF NOT EXISTS import_records (
    id integer PRIMARY KEY AUTOINCREMENT,
    last_import integer,
    data_path text NOT NULL UNIQUE
);
"""


class _PendingVisit(NamedTuple):
    item_id: int
    visit_time: int
    visit_type: int


class SQLiteStore(Store):
    """Canonical history database.

    Single writer: all access goes through one connection guarded by one
    lock, so callers cannot interleave transactions. Several processes
    writing the same file at once is not supported.
    """

    def __init__(self, db_path: str, batch_size: int = DEFAULT_BATCH_SIZE) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.db_path = Path(db_path)
        self.batch_size = batch_size
        self._lock = threading.Lock()
        self._connection: sqlite3.Connection | None = None

    @classmethod
    def open(cls, db_path: str, batch_size: int = DEFAULT_BATCH_SIZE) -> SQLiteStore:
        store = cls(db_path, batch_size=batch_size)
        store.init_db()
        return store

    def init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            try:
                self._connect().executescript(SCHEMA)
            except sqlite3.Error as exc:
                raise StorageFault(f"create tables in {self.db_path}: {exc}") from exc

    def persist(self, source_path: str, visits: Iterable[VisitDetail]) -> PersistResult:
        total = PersistResult()
        batch: list[_PendingVisit] = []
        try:
            for visit in visits:
                item_id = self.intern_url(visit.url, visit.title)
                batch.append(_PendingVisit(item_id, visit.visit_time, visit.visit_type))
                if len(batch) == self.batch_size:
                    total += self._persist_batch(source_path, batch)
                    batch = []
            if batch:
                total += self._persist_batch(source_path, batch)
        except HistoryBackupError as exc:
            raise StorageFault(f"persist {source_path}: {exc}", partial=total) from exc

        return total

    def intern_url(self, url: str, title: str) -> int:
        """Return the id of ``url``, inserting it with ``title`` on first sight.

        The title of an existing URL is never updated.
        """
        with self._lock:
            connection = self._connect()
            try:
                existing = _find_url(connection, url)
                if existing is not None:
                    return existing.id
                cursor = connection.execute(
                    "INSERT INTO onehistory_urls (url, title) VALUES (?, ?)",
                    (url, title),
                )
            except sqlite3.Error as exc:
                raise StorageFault(f"insert onehistory_urls {url}: {exc}") from exc
            return int(cursor.lastrowid)

    def _persist_batch(self, source_path: str, batch: list[_PendingVisit]) -> PersistResult:
        result = PersistResult()
        # batches arrive ordered by visit time, so the last one is the newest
        last_import = batch[-1].visit_time

        with self._lock:
            connection = self._connect()
            try:
                connection.execute("BEGIN")
                for visit in batch:
                    try:
                        connection.execute(
                            """
                            INSERT INTO onehistory_visits (item_id, visit_time, visit_type)
                            VALUES (?, ?, ?)
                            """,
                            visit,
                        )
                    except sqlite3.IntegrityError as exc:
                        if not _is_unique_violation(exc):
                            raise
                        result.duplicated += 1
                        logger.debug(
                            "[ignore] onehistory_visits duplicated. id:%d, time:%d, type:%d",
                            visit.item_id,
                            visit.visit_time,
                            visit.visit_type,
                        )
                        continue
                    result.affected += 1

                connection.execute(
                    """
                    INSERT INTO import_records (last_import, data_path)
                    VALUES (?, ?)
                    ON CONFLICT (data_path) DO UPDATE SET
                        last_import = excluded.last_import
                    """,
                    (last_import, source_path),
                )
                connection.commit()
            except sqlite3.Error as exc:
                if connection.in_transaction:
                    connection.rollback()
                raise StorageFault(f"insert onehistory_visits: {exc}") from exc

        return result

    def select_url(self, url: str) -> UrlRecord | None:
        with self._lock:
            try:
                return _find_url(self._connect(), url)
            except sqlite3.Error as exc:
                raise StorageFault(f"query {self.db_path}: {exc}") from exc

    def select_url_visits(self, url: str) -> list[VisitRecord]:
        rows = self._query(
            """
            SELECT v.id, v.item_id, v.visit_time, v.visit_type
            FROM onehistory_visits AS v
            JOIN onehistory_urls AS u ON u.id = v.item_id
            WHERE u.url = :url
            ORDER BY v.visit_time
            """,
            {"url": url},
        )
        return [
            VisitRecord(
                id=row["id"],
                item_id=row["item_id"],
                visit_time=row["visit_time"],
                visit_type=row["visit_type"],
            )
            for row in rows
        ]

    def select_visits(
        self, start: int, end: int, keyword: str | None = None
    ) -> list[VisitDetail]:
        keyword_sql, params = _keyword_filter(keyword)
        rows = self._query(
            f"""
            SELECT u.url, u.title, v.visit_time, v.visit_type
            FROM onehistory_visits AS v
            JOIN onehistory_urls AS u ON u.id = v.item_id
            WHERE v.visit_time BETWEEN :start AND :end
              AND {keyword_sql}
            ORDER BY v.visit_time
            """,
            {"start": start, "end": end, **params},
        )
        return [
            VisitDetail(
                url=row["url"],
                title=row["title"] or "",
                visit_time=row["visit_time"],
                visit_type=row["visit_type"],
            )
            for row in rows
        ]

    def select_daily_counts(
        self, start: int, end: int, keyword: str | None = None
    ) -> list[tuple[int, int]]:
        keyword_sql, params = _keyword_filter(keyword)
        rows = self._query(
            f"""
            SELECT
                strftime('%Y-%m-%d', v.visit_time / 1000, 'unixepoch', 'localtime') AS visit_day,
                count(1) AS cnt
            FROM onehistory_visits AS v
            JOIN onehistory_urls AS u ON u.id = v.item_id
            WHERE v.visit_time BETWEEN :start AND :end
              AND {keyword_sql}
            GROUP BY visit_day
            ORDER BY visit_day
            """,
            {"start": start, "end": end, **params},
        )
        return [(ymd_midnight_ms(row["visit_day"]), row["cnt"]) for row in rows]

    def select_top_n_by_domain(
        self, start: int, end: int, keyword: str | None = None, n: int = 100
    ) -> list[tuple[str, int]]:
        keyword_sql, params = _keyword_filter(keyword)
        rows = self._query(
            f"""
            SELECT u.url, count(1) AS cnt
            FROM onehistory_visits AS v
            JOIN onehistory_urls AS u ON u.id = v.item_id
            WHERE v.visit_time BETWEEN :start AND :end
              AND u.title != ''
              AND {keyword_sql}
            GROUP BY u.url
            """,
            {"start": start, "end": end, **params},
        )
        per_domain: Counter[str] = Counter()
        for row in rows:
            per_domain[domain_from(row["url"])] += row["cnt"]
        ranked = sorted(per_domain.items(), key=lambda item: (-item[1], item[0]))
        return ranked[:n]

    def select_top_n_by_title(
        self, start: int, end: int, keyword: str | None = None, n: int = 100
    ) -> list[tuple[str, int]]:
        keyword_sql, params = _keyword_filter(keyword)
        rows = self._query(
            f"""
            SELECT u.title, count(1) AS cnt
            FROM onehistory_visits AS v
            JOIN onehistory_urls AS u ON u.id = v.item_id
            WHERE v.visit_time BETWEEN :start AND :end
              AND u.title != ''
              AND {keyword_sql}
            GROUP BY u.title
            ORDER BY cnt DESC, u.title
            LIMIT :limit
            """,
            {"start": start, "end": end, "limit": n, **params},
        )
        return [(row["title"], row["cnt"]) for row in rows]

    def select_min_max_time(self) -> tuple[int, int] | None:
        rows = self._query(
            "SELECT min(visit_time) AS min_time, max(visit_time) AS max_time FROM onehistory_visits",
            {},
        )
        row = rows[0]
        if row["min_time"] is None:
            return None
        return row["min_time"], row["max_time"]

    def select_watermarks(self) -> list[ImportWatermark]:
        rows = self._query(
            "SELECT data_path, last_import FROM import_records ORDER BY data_path",
            {},
        )
        return [
            ImportWatermark(data_path=row["data_path"], last_import=row["last_import"])
            for row in rows
        ]

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def __enter__(self) -> SQLiteStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _query(self, sql: str, params: dict[str, Any]) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._connect().execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise StorageFault(f"query {self.db_path}: {exc}") from exc

    def _connect(self) -> sqlite3.Connection:
        if self._connection is None:
            # Autocommit: URL rows commit on their own, visit batches use explicit BEGIN.
            connection = sqlite3.connect(
                self.db_path, isolation_level=None, check_same_thread=False
            )
            connection.row_factory = sqlite3.Row
            self._connection = connection
        return self._connection


def _find_url(connection: sqlite3.Connection, url: str) -> UrlRecord | None:
    row = connection.execute(
        "SELECT id, url, title FROM onehistory_urls WHERE url = ?", (url,)
    ).fetchone()
    if row is None:
        return None
    return UrlRecord(id=row["id"], url=row["url"], title=row["title"] or "")


def _keyword_filter(keyword: str | None) -> tuple[str, dict[str, Any]]:
    # Apostrophes are dropped from the keyword before it reaches the query.
    cleaned = strip_apostrophes(keyword)
    if cleaned is None:
        return "1", {}
    # instr() is case-sensitive, unlike LIKE.
    return (
        "(instr(u.url, :keyword) > 0 OR instr(u.title, :keyword) > 0)",
        {"keyword": cleaned},
    )


def _is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return getattr(exc, "sqlite_errorcode", None) == sqlite3.SQLITE_CONSTRAINT_UNIQUE
