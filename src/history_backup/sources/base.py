from __future__ import annotations

from abc import ABC, abstractmethod

from history_backup.models import SourceFamily
from history_backup.utils.datetime_utils import canonical_to_native, native_to_canonical


class BrowserFamily(ABC):
    """Schema and timestamp conventions of one browser engine's history file."""

    family: SourceFamily
    # Tables whose presence identifies the family; the first holds the visits.
    required_tables: tuple[str, ...]
    # (table, alias) of the table carrying the page title column.
    title_source: tuple[str, str]

    @property
    def name(self) -> str:
        return self.family.value

    def to_native(self, ms: int) -> int | float:
        return canonical_to_native(self.family, ms)

    def to_canonical(self, native: int | float) -> int:
        return native_to_canonical(self.family, native)

    @abstractmethod
    def select_sql(self, title_expr: str) -> str:
        """Return the visit query, bound by ``:start`` (inclusive) and ``:end`` (exclusive).

        Rows are ``(url, title, native visit time, visit type)`` ordered by visit time.
        """
