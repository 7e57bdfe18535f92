from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from history_backup.models import (
    ImportWatermark,
    PersistResult,
    UrlRecord,
    VisitDetail,
    VisitRecord,
)


class Store(ABC):
    @abstractmethod
    def init_db(self) -> None:
        """Create any required schema."""

    @abstractmethod
    def persist(self, source_path: str, visits: Iterable[VisitDetail]) -> PersistResult:
        """Store visits in batches, counting new rows and rejected duplicates."""

    @abstractmethod
    def select_url(self, url: str) -> UrlRecord | None:
        """Return the stored row of ``url``, or None when it was never seen."""

    @abstractmethod
    def select_url_visits(self, url: str) -> list[VisitRecord]:
        """Return every stored visit of ``url``, oldest first."""

    @abstractmethod
    def select_visits(
        self, start: int, end: int, keyword: str | None = None
    ) -> list[VisitDetail]:
        """Return stored visits with ``start <= visit_time <= end``, oldest first."""

    @abstractmethod
    def select_daily_counts(
        self, start: int, end: int, keyword: str | None = None
    ) -> list[tuple[int, int]]:
        """Return ``(local midnight ms, visit count)`` per day."""

    @abstractmethod
    def select_top_n_by_domain(
        self, start: int, end: int, keyword: str | None = None, n: int = 100
    ) -> list[tuple[str, int]]:
        """Return the most visited domains with their visit counts."""

    @abstractmethod
    def select_top_n_by_title(
        self, start: int, end: int, keyword: str | None = None, n: int = 100
    ) -> list[tuple[str, int]]:
        """Return the most visited page titles with their visit counts."""

    @abstractmethod
    def select_min_max_time(self) -> tuple[int, int] | None:
        """Return the oldest and newest visit times, or None when empty."""

    @abstractmethod
    def select_watermarks(self) -> list[ImportWatermark]:
        """Return the import watermark of every source path."""

    def close(self) -> None:
        """Release any held resources."""
