from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from history_backup.models import VisitDetail


class Exporter(ABC):
    @abstractmethod
    def export(self, visits: Iterable[VisitDetail]) -> int:
        """Write visits to a destination and return how many were written."""
