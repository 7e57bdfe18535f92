from __future__ import annotations

from history_backup.models import SourceFamily

from .base import BrowserFamily
from .registry import register_family


class FirefoxHistory(BrowserFamily):
    """places.sqlite: PRTime microseconds since the Unix epoch."""

    family = SourceFamily.FIREFOX
    required_tables = ("moz_historyvisits", "moz_places")
    title_source = ("moz_places", "p")

    def select_sql(self, title_expr: str) -> str:
        return f"""
            SELECT
                p.url,
                {title_expr},
                h.visit_date,
                h.visit_type
            FROM moz_historyvisits AS h
            JOIN moz_places AS p ON h.place_id = p.id
            WHERE h.visit_date >= :start
              AND h.visit_date < :end
            ORDER BY h.visit_date
        """


class SafariHistory(BrowserFamily):
    """History.db: fractional seconds since 2001-01-01 UTC, no visit type."""

    family = SourceFamily.SAFARI
    required_tables = ("history_visits", "history_items")
    title_source = ("history_visits", "hv")

    def select_sql(self, title_expr: str) -> str:
        return f"""
            SELECT
                hi.url,
                {title_expr},
                hv.visit_time,
                -1
            FROM history_items AS hi
            JOIN history_visits AS hv ON hi.id = hv.history_item
            WHERE hv.visit_time >= :start
              AND hv.visit_time < :end
            ORDER BY hv.visit_time
        """


class ChromeHistory(BrowserFamily):
    """Chromium History: microseconds since 1601-01-01 UTC."""

    family = SourceFamily.CHROME
    required_tables = ("visits", "urls")
    title_source = ("urls", "u")

    def select_sql(self, title_expr: str) -> str:
        # The low byte of ``transition`` is the core page transition type.
        return f"""
            SELECT
                u.url,
                {title_expr},
                v.visit_time,
                v.transition & 255
            FROM visits AS v
            JOIN urls AS u ON v.url = u.id
            WHERE v.visit_time >= :start
              AND v.visit_time < :end
            ORDER BY v.visit_time
        """


@register_family(SourceFamily.FIREFOX.value)
def _build_firefox() -> BrowserFamily:
    return FirefoxHistory()


@register_family(SourceFamily.SAFARI.value)
def _build_safari() -> BrowserFamily:
    return SafariHistory()


@register_family(SourceFamily.CHROME.value)
def _build_chrome() -> BrowserFamily:
    return ChromeHistory()
