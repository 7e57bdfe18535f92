from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from history_backup.errors import (
    LockedSource,
    StorageFault,
    UnrecognizedSource,
    classify_sqlite_error,
)
from history_backup.models import VisitDetail
from history_backup.sources import HistorySource, registered_family_names

# whole seconds so Safari's fractional-second encoding is exact
T1 = 1_717_245_296_000
T2 = T1 + 60_000
T3 = T1 + 120_000


@pytest.mark.parametrize("family", ["firefox", "chrome", "safari"])
def test_open_detects_family_and_selects_in_visit_order(make_history, family: str) -> None:
    path = make_history(
        family,
        [
            ("https://example.com/b", "B", T2, 1),
            ("https://example.com/a", "A", T1, 1),
            ("https://example.com/c", "C", T3, 1),
        ],
    )

    with HistorySource.open(path) as source:
        visits = source.select(0, T3 + 1)

    assert source.name == family
    assert [visit.url for visit in visits] == [
        "https://example.com/a",
        "https://example.com/b",
        "https://example.com/c",
    ]
    assert [visit.visit_time for visit in visits] == [T1, T2, T3]
    assert [visit.title for visit in visits] == ["A", "B", "C"]


@pytest.mark.parametrize("family", ["firefox", "chrome", "safari"])
def test_select_window_is_start_inclusive_end_exclusive(make_history, family: str) -> None:
    path = make_history(
        family,
        [
            ("https://example.com/a", "A", T1, 0),
            ("https://example.com/b", "B", T2, 0),
            ("https://example.com/c", "C", T3, 0),
        ],
    )

    with HistorySource.open(path) as source:
        visits = source.select(T1, T3)

    assert [visit.visit_time for visit in visits] == [T1, T2]


def test_visit_types_follow_each_family(make_history) -> None:
    firefox = make_history("firefox", [("https://a.test/", "A", T1, 5)])
    # Chrome keeps qualifier bits above the core transition type
    chrome = make_history("chrome", [("https://a.test/", "A", T1, 0x30000001)])
    safari = make_history("safari", [("https://a.test/", "A", T1, 7)])

    with HistorySource.open(firefox) as source:
        assert source.select(0, T2)[0].visit_type == 5
    with HistorySource.open(chrome) as source:
        assert source.select(0, T2)[0].visit_type == 1
    with HistorySource.open(safari) as source:
        assert source.select(0, T2)[0].visit_type == -1


def test_missing_title_becomes_empty_string(make_history) -> None:
    path = make_history("chrome", [("https://untitled.test/", None, T1, 0)])

    with HistorySource.open(path) as source:
        visits = source.select(0, T2)

    assert visits == [VisitDetail(url="https://untitled.test/", title="", visit_time=T1, visit_type=0)]


def test_absent_title_column_becomes_empty_string(make_history) -> None:
    path = make_history("safari", [("https://old-safari.test/", "ignored", T1, 0)], with_title=False)

    with HistorySource.open(path) as source:
        visits = source.select(0, T2)

    assert [visit.title for visit in visits] == [""]


def test_undecodable_title_becomes_empty_string(tmp_path: Path, make_history) -> None:
    path = make_history("firefox", [("https://bytes.test/", "placeholder", T1, 0)])
    with sqlite3.connect(path) as connection:
        connection.execute("UPDATE moz_places SET title = CAST(X'FFFE41' AS TEXT)")
    connection.close()

    with HistorySource.open(path) as source:
        visits = source.select(0, T2)

    assert visits[0].url == "https://bytes.test/"
    assert visits[0].title == ""


def test_unrecognized_schema_fails_without_writing(tmp_path: Path) -> None:
    path = tmp_path / "notes.sqlite"
    with sqlite3.connect(path) as connection:
        connection.execute("CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT)")
    connection.close()
    before = path.read_bytes()

    with pytest.raises(UnrecognizedSource, match="no known browser schema"):
        HistorySource.open(str(path))

    assert path.read_bytes() == before
    assert UnrecognizedSource.client_error is True


def test_missing_file_is_a_storage_fault_and_is_not_created(tmp_path: Path) -> None:
    path = tmp_path / "missing.sqlite"

    with pytest.raises(StorageFault):
        HistorySource.open(str(path))

    assert not path.exists()


def test_probe_order_is_deterministic(tmp_path: Path) -> None:
    path = tmp_path / "mixed.sqlite"
    with sqlite3.connect(path) as connection:
        connection.executescript(
            """
            CREATE TABLE urls (id INTEGER PRIMARY KEY, url TEXT, title TEXT);
            CREATE TABLE visits (id INTEGER PRIMARY KEY, url INTEGER, visit_time INTEGER, transition INTEGER);
            CREATE TABLE moz_places (id INTEGER PRIMARY KEY, url TEXT, title TEXT);
            CREATE TABLE moz_historyvisits (id INTEGER PRIMARY KEY, place_id INTEGER, visit_date INTEGER, visit_type INTEGER);
            """
        )
    connection.close()

    assert registered_family_names() == ["firefox", "safari", "chrome"]
    with HistorySource.open(str(path)) as source:
        assert source.name == "firefox"


def test_busy_and_locked_errors_are_classified_as_locked_source() -> None:
    busy = sqlite3.OperationalError("database is locked")
    busy.sqlite_errorcode = sqlite3.SQLITE_BUSY
    shared_cache = sqlite3.OperationalError("database table is locked")
    shared_cache.sqlite_errorcode = sqlite3.SQLITE_LOCKED
    other = sqlite3.OperationalError("no such table: visits")
    other.sqlite_errorcode = sqlite3.SQLITE_ERROR

    assert isinstance(classify_sqlite_error(busy, "open"), LockedSource)
    assert isinstance(classify_sqlite_error(shared_cache, "open"), LockedSource)
    assert isinstance(classify_sqlite_error(other, "open"), StorageFault)
    # the message text alone never decides
    assert isinstance(
        classify_sqlite_error(sqlite3.OperationalError("database is locked"), "open"),
        StorageFault,
    )


def _journal_mode(path: str) -> str:
    connection = sqlite3.connect(path)
    try:
        return connection.execute("PRAGMA journal_mode").fetchone()[0]
    finally:
        connection.close()


@pytest.mark.parametrize("family", ["firefox", "chrome", "safari"])
def test_wal_mode_source_is_readable(make_history, family: str) -> None:
    path = make_history(family, [("https://wal.test/", "W", T1, 0)], wal=True)

    with HistorySource.open(path) as source:
        visits = source.select(0, T2)

    assert source.name == family
    assert [visit.url for visit in visits] == ["https://wal.test/"]
    assert _journal_mode(path) == "wal"


def test_wal_mode_source_is_readable_while_a_browser_writes(make_history) -> None:
    path = make_history("firefox", [("https://first.test/", "First", T1, 1)], wal=True)
    browser = sqlite3.connect(path)
    try:
        # committed into the WAL file, not yet checkpointed
        browser.execute(
            "INSERT INTO moz_places (id, url, title) VALUES (100, 'https://live.test/', 'Live')"
        )
        browser.execute(
            "INSERT INTO moz_historyvisits (place_id, visit_date, visit_type) VALUES (100, ?, 1)",
            (T2 * 1000,),
        )
        browser.commit()

        with HistorySource.open(path) as source:
            visits = source.select(0, T3)
    finally:
        browser.close()

    assert [(visit.url, visit.visit_time) for visit in visits] == [
        ("https://first.test/", T1),
        ("https://live.test/", T2),
    ]


@pytest.mark.usefixtures("no_busy_wait")
def test_exclusively_locked_file_raises_locked_source(make_history, exclusive_lock) -> None:
    path = make_history("chrome", [("https://busy.test/", "B", T1, 0)])
    exclusive_lock(path)

    with pytest.raises(LockedSource):
        HistorySource.open(path)
