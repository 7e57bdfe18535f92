from __future__ import annotations

import argparse
import logging
import sys

from history_backup.config import AppConfig, ConfigError, load_config
from history_backup.errors import HistoryBackupError
from history_backup.exporters import CsvExporter
from history_backup.logging_config import setup_logging
from history_backup.profiles import detect_history_files
from history_backup.report import DEFAULT_REPORT_DAYS, render_report_text
from history_backup.service import HistoryBackupService
from history_backup.store import SQLiteStore
from history_backup.utils.datetime_utils import (
    DAY_MS,
    full_time_range,
    parse_datetime_utc,
    to_unixepoch_ms,
    tomorrow_midnight_ms,
)

logger = logging.getLogger(__name__)


def _epoch_ms(value: str) -> int:
    parsed = parse_datetime_utc(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"invalid date: {value!r}")
    return to_unixepoch_ms(parsed)


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"must be an integer: {value!r}") from exc
    if parsed < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1: {parsed}")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="history-backup",
        description="Merge Safari, Firefox and Chrome history into one SQLite database.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to config YAML file (default: built-in defaults)",
    )
    parser.add_argument(
        "--db-file",
        help="Path to the history database (overrides config and environment)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-level",
        help="Override config log level (e.g. INFO, DEBUG)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("init-db", help="Initialize SQLite schema")
    subparsers.add_parser("show", help="Show default history files on this computer")

    backup = subparsers.add_parser("backup", help="Backup browser history into the database")
    backup.add_argument(
        "-f",
        "--history-files",
        nargs="+",
        default=[],
        help="SQLite history files of different browsers (History.db/places.sqlite/History)",
    )
    backup.add_argument(
        "-d",
        "--disable-detect",
        action="store_true",
        help="Disable auto detection of default history files",
    )
    backup.add_argument(
        "-D",
        "--dry-run",
        action="store_true",
        help="Read and count visits without writing them",
    )
    backup.add_argument("--start", type=_epoch_ms, help="Inclusive start date (UTC)")
    backup.add_argument("--end", type=_epoch_ms, help="Exclusive end date (UTC)")

    export = subparsers.add_parser("export", help="Export every stored visit to CSV")
    export.add_argument("--csv-file", help="Output CSV file (overrides config)")

    report = subparsers.add_parser("report", help="Print daily counts and top sites")
    report.add_argument("--start", type=_epoch_ms, help="Inclusive start date (UTC)")
    report.add_argument("--end", type=_epoch_ms, help="Inclusive end date (UTC)")
    report.add_argument("--keyword", help="Only count visits whose URL or title contains this")
    report.add_argument(
        "--top", type=_positive_int, default=10, help="Entries per ranking (default: 10)"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = load_config(args.config)
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 2

    if args.db_file:
        app_config.database.path = args.db_file

    log_level = "DEBUG" if args.verbose else (args.log_level or app_config.log_level)
    setup_logging(log_level)

    if args.command == "show":
        return _run_show(app_config)

    try:
        store = SQLiteStore.open(app_config.database.path, batch_size=app_config.backup.batch_size)
    except HistoryBackupError as exc:
        logger.error("Open history database failed: %s", exc)
        return 1

    with store:
        if args.command == "init-db":
            logger.info("Initialized SQLite database at %s", app_config.database.path)
            return 0
        if args.command == "backup":
            return _run_backup(args, app_config, store)
        if args.command == "export":
            return _run_export(args, app_config, store)
        if args.command == "report":
            return _run_report(args, store)

    parser.error(f"unknown command {args.command}")
    return 2


def _run_show(app_config: AppConfig) -> int:
    logger.info("Local database:%s", app_config.database.path)
    history_files = detect_history_files()
    for history_file in history_files:
        logger.info("found:%s", history_file)
    logger.info("Total:%d", len(history_files))
    return 0


def _run_backup(args: argparse.Namespace, app_config: AppConfig, store: SQLiteStore) -> int:
    history_files: list[str] = []
    if not args.disable_detect and app_config.backup.detect_default_profiles:
        history_files.extend(detect_history_files())
    history_files.extend(app_config.backup.history_files)
    history_files.extend(args.history_files)
    # keep first occurrence order
    history_files = list(dict.fromkeys(history_files))

    default_start, default_end = full_time_range()
    start = args.start if args.start is not None else default_start
    end = args.end if args.end is not None else default_end

    service = HistoryBackupService(store=store, dry_run=args.dry_run)
    stats = service.run(history_files, start, end)
    logger.info(
        "Backup complete | files=%d found=%d imported=%d duplicated=%d failed=%d",
        len(history_files),
        stats.found,
        stats.affected,
        stats.duplicated,
        len(stats.failed_sources),
    )
    return 0 if stats.ok else 1


def _run_export(args: argparse.Namespace, app_config: AppConfig, store: SQLiteStore) -> int:
    csv_path = args.csv_file or app_config.export.csv_path
    start, end = full_time_range()
    try:
        visits = store.select_visits(start, end)
        CsvExporter(csv_path).export(visits)
    except (HistoryBackupError, OSError) as exc:
        logger.error("Export to %s failed: %s", csv_path, exc)
        return 1
    return 0


def _run_report(args: argparse.Namespace, store: SQLiteStore) -> int:
    end = args.end if args.end is not None else tomorrow_midnight_ms()
    start = args.start if args.start is not None else end - DEFAULT_REPORT_DAYS * DAY_MS
    try:
        text = render_report_text(store, start, end, keyword=args.keyword, top_n=args.top)
    except HistoryBackupError as exc:
        logger.error("Report failed: %s", exc)
        return 1
    print(text)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
