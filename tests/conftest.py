from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Callable

import pytest

from history_backup.sources import history_source

# (url, title, visit time in ms since the Unix epoch, visit type)
Visit = tuple[str, str | None, int, int]
HistoryFactory = Callable[..., str]


def _place_ids(visits: list[Visit]) -> dict[str, tuple[int, str | None]]:
    places: dict[str, tuple[int, str | None]] = {}
    for url, title, _, _ in visits:
        if url not in places:
            places[url] = (len(places) + 1, title)
    return places


def build_firefox_history(path: Path, visits: list[Visit]) -> None:
    places = _place_ids(visits)
    with sqlite3.connect(path) as connection:
        connection.executescript(
            """
            CREATE TABLE moz_places (id INTEGER PRIMARY KEY, url LONGVARCHAR, title LONGVARCHAR);
            CREATE TABLE moz_historyvisits (
                id INTEGER PRIMARY KEY,
                place_id INTEGER,
                visit_date INTEGER,
                visit_type INTEGER
            );
            """
        )
        connection.executemany(
            "INSERT INTO moz_places (id, url, title) VALUES (?, ?, ?)",
            [(place_id, url, title) for url, (place_id, title) in places.items()],
        )
        connection.executemany(
            "INSERT INTO moz_historyvisits (place_id, visit_date, visit_type) VALUES (?, ?, ?)",
            [(places[url][0], ms * 1000, visit_type) for url, _, ms, visit_type in visits],
        )
    connection.close()


def build_chrome_history(path: Path, visits: list[Visit]) -> None:
    places = _place_ids(visits)
    with sqlite3.connect(path) as connection:
        connection.executescript(
            """
            CREATE TABLE urls (id INTEGER PRIMARY KEY, url LONGVARCHAR, title LONGVARCHAR);
            CREATE TABLE visits (
                id INTEGER PRIMARY KEY,
                url INTEGER NOT NULL,
                visit_time INTEGER NOT NULL,
                transition INTEGER NOT NULL DEFAULT 0
            );
            """
        )
        connection.executemany(
            "INSERT INTO urls (id, url, title) VALUES (?, ?, ?)",
            [(place_id, url, title) for url, (place_id, title) in places.items()],
        )
        connection.executemany(
            "INSERT INTO visits (url, visit_time, transition) VALUES (?, ?, ?)",
            [
                (places[url][0], ms * 1000 + 11_644_473_600_000_000, visit_type)
                for url, _, ms, visit_type in visits
            ],
        )
    connection.close()


def build_safari_history(path: Path, visits: list[Visit], *, with_title: bool = True) -> None:
    places = _place_ids(visits)
    title_column = ", title TEXT" if with_title else ""
    with sqlite3.connect(path) as connection:
        connection.executescript(
            f"""
            CREATE TABLE history_items (id INTEGER PRIMARY KEY, url TEXT NOT NULL UNIQUE);
            CREATE TABLE history_visits (
                id INTEGER PRIMARY KEY,
                history_item INTEGER NOT NULL,
                visit_time REAL NOT NULL{title_column}
            );
            """
        )
        connection.executemany(
            "INSERT INTO history_items (id, url) VALUES (?, ?)",
            [(place_id, url) for url, (place_id, _) in places.items()],
        )
        if with_title:
            connection.executemany(
                "INSERT INTO history_visits (history_item, visit_time, title) VALUES (?, ?, ?)",
                [
                    (places[url][0], ms / 1000 - 978_307_200, title)
                    for url, title, ms, _ in visits
                ],
            )
        else:
            connection.executemany(
                "INSERT INTO history_visits (history_item, visit_time) VALUES (?, ?)",
                [(places[url][0], ms / 1000 - 978_307_200) for url, _, ms, _ in visits],
            )
    connection.close()


def enable_wal(path: Path) -> None:
    """Switch a history file to WAL, the journal mode Firefox and Chrome run in."""
    connection = sqlite3.connect(path)
    try:
        (mode,) = connection.execute("PRAGMA journal_mode = WAL").fetchone()
    finally:
        connection.close()
    assert mode == "wal"


_BUILDERS = {
    "firefox": build_firefox_history,
    "chrome": build_chrome_history,
    "safari": build_safari_history,
}


@pytest.fixture
def make_history(tmp_path: Path) -> HistoryFactory:
    def factory(
        family: str,
        visits: list[Visit],
        name: str | None = None,
        *,
        wal: bool = False,
        **options: object,
    ) -> str:
        path = tmp_path / (name or f"{family}-history.sqlite")
        _BUILDERS[family](path, visits, **options)
        if wal:
            enable_wal(path)
        return str(path)

    return factory


@pytest.fixture
def no_busy_wait(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(history_source, "BUSY_TIMEOUT_SECONDS", 0)


@pytest.fixture
def exclusive_lock():
    """Hold an exclusive lock on a history file, as a browser mid-write does."""
    holders: list[sqlite3.Connection] = []

    def lock(path: str) -> sqlite3.Connection:
        connection = sqlite3.connect(path, isolation_level=None)
        connection.execute("BEGIN EXCLUSIVE")
        holders.append(connection)
        return connection

    yield lock
    for connection in holders:
        connection.rollback()
        connection.close()
