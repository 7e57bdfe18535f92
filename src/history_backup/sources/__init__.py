"""Browser history readers and the family registry."""

from .base import BrowserFamily
from .families import ChromeHistory, FirefoxHistory, SafariHistory
from .history_source import HistorySource, detect_family
from .registry import (
    register_family,
    registered_families,
    registered_family_names,
)

__all__ = [
    "BrowserFamily",
    "ChromeHistory",
    "FirefoxHistory",
    "HistorySource",
    "SafariHistory",
    "detect_family",
    "register_family",
    "registered_families",
    "registered_family_names",
]
