from __future__ import annotations

import csv
import logging
from collections.abc import Iterable
from pathlib import Path

from history_backup.models import VisitDetail
from history_backup.utils.datetime_utils import format_ymdhms

from .base import Exporter

logger = logging.getLogger(__name__)

CSV_HEADER = ("time", "title", "url", "visit_type")


class CsvExporter(Exporter):
    def __init__(self, csv_path: str) -> None:
        self.csv_path = Path(csv_path)

    def export(self, visits: Iterable[VisitDetail]) -> int:
        self.csv_path.parent.mkdir(parents=True, exist_ok=True)
        written = 0
        with self.csv_path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.writer(handle)
            writer.writerow(CSV_HEADER)
            for visit in visits:
                writer.writerow(render_csv_row(visit))
                written += 1

        logger.info("Export %d histories in %s.", written, self.csv_path)
        return written


def render_csv_row(visit: VisitDetail) -> tuple[str, str, str, int]:
    return (
        format_ymdhms(visit.visit_time),
        visit.title.replace(",", ""),
        visit.url,
        visit.visit_type,
    )
