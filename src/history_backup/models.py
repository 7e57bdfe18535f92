from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SourceFamily(str, Enum):
    SAFARI = "safari"
    FIREFOX = "firefox"
    CHROME = "chrome"


@dataclass(slots=True)
class VisitDetail:
    url: str
    title: str
    # milliseconds since 1970-01-01 UTC
    visit_time: int
    visit_type: int = 0


@dataclass(slots=True)
class UrlRecord:
    id: int
    url: str
    title: str


@dataclass(slots=True)
class VisitRecord:
    id: int
    item_id: int
    visit_time: int
    visit_type: int


@dataclass(slots=True)
class ImportWatermark:
    data_path: str
    last_import: int


@dataclass(slots=True)
class PersistResult:
    affected: int = 0
    duplicated: int = 0

    def __add__(self, other: PersistResult) -> PersistResult:
        return PersistResult(
            affected=self.affected + other.affected,
            duplicated=self.duplicated + other.duplicated,
        )
