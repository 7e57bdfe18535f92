from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from history_backup.errors import HistoryBackupError, LockedSource, StorageFault
from history_backup.sources import HistorySource
from history_backup.store import Store

logger = logging.getLogger(__name__)

SourceOpener = Callable[[str], HistorySource]


@dataclass(slots=True)
class BackupStats:
    found: int = 0
    affected: int = 0
    duplicated: int = 0
    failed_sources: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        return (
            f"Found:{self.found}, Imported:{self.affected}, Duplicated: {self.duplicated}"
        )


class HistoryBackupService:
    """Imports browser history files into the canonical store, one at a time.

    A failing source is logged and skipped; it never aborts the run. A
    locked source is retried once from a private copy of the file.
    """

    def __init__(
        self,
        *,
        store: Store,
        source_opener: SourceOpener = HistorySource.open,
        dry_run: bool = False,
    ) -> None:
        self.store = store
        self.source_opener = source_opener
        self.dry_run = dry_run

    def run(self, history_files: Iterable[str], start: int, end: int) -> BackupStats:
        stats = BackupStats()
        history_files = list(history_files)
        logger.debug("files:%s, start:%d, end:%d", history_files, start, end)

        for history_file in history_files:
            try:
                self._backup_file(history_file, history_file, start, end, stats)
            except LockedSource as exc:
                logger.debug(
                    "Open %s directly failed (%s), copy to temp and backup again",
                    history_file,
                    exc,
                )
                self._backup_from_copy(history_file, start, end, stats)
            except Exception as exc:  # noqa: BLE001
                _record_failure(stats, history_file, exc)

        logger.info("Summary\n%s", stats.summary())
        return stats

    def _backup_file(
        self,
        open_path: str,
        data_path: str,
        start: int,
        end: int,
        stats: BackupStats,
    ) -> None:
        with self.source_opener(open_path) as source:
            rows = source.select(start, end)
            source_name = source.name
        logger.debug("%s select %d histories", source_name, len(rows))
        stats.found += len(rows)

        if self.dry_run:
            logger.info("Dry run, skip persisting %d visits from %s", len(rows), data_path)
            return

        logger.info("Begin backup %s...", data_path)
        try:
            result = self.store.persist(data_path, rows)
        except StorageFault as exc:
            if exc.partial is not None:
                stats.affected += exc.partial.affected
                stats.duplicated += exc.partial.duplicated
            raise
        logger.debug(
            "%s affected:%d, duplicated:%d", source_name, result.affected, result.duplicated
        )
        stats.affected += result.affected
        stats.duplicated += result.duplicated
        logger.info("Finish backup %s", data_path)

    def _backup_from_copy(
        self, history_file: str, start: int, end: int, stats: BackupStats
    ) -> None:
        try:
            handle = tempfile.NamedTemporaryFile(
                prefix="history-backup-", suffix=".sqlite", delete=False
            )
        except OSError as exc:
            _record_failure(stats, history_file, exc)
            return

        copy_path = Path(handle.name)
        try:
            with handle, open(history_file, "rb") as original:
                shutil.copyfileobj(original, handle)
            # The watermark stays keyed by the original path, not the copy.
            self._backup_file(str(copy_path), history_file, start, end, stats)
        except Exception as exc:  # noqa: BLE001
            logger.debug("%s persist failed, backup:%s", history_file, copy_path)
            _record_failure(stats, history_file, exc)
        finally:
            copy_path.unlink(missing_ok=True)


def _record_failure(stats: BackupStats, history_file: str, exc: BaseException) -> None:
    message = f"backup {history_file} failed: {exc}"
    if isinstance(exc, (HistoryBackupError, OSError)):
        logger.warning(message)
    else:
        logger.exception(message)
    stats.failed_sources.append(history_file)
    stats.errors.append(message)
