from __future__ import annotations

from history_backup.store import Store
from history_backup.utils.datetime_utils import format_ymd, format_ymdhms

DEFAULT_REPORT_DAYS = 30


def render_report_text(
    store: Store,
    start: int,
    end: int,
    *,
    keyword: str | None = None,
    top_n: int = 10,
) -> str:
    """Render the daily counts and top domains/titles of a window as plain text."""
    header = f"History {format_ymd(start)} .. {format_ymd(end)}"
    if keyword:
        header = f"{header} | keyword: {keyword}"
    lines = [header]

    time_range = store.select_min_max_time()
    if time_range is None:
        lines.append("Stored visits: none")
    else:
        lines.append(
            f"Stored visits: {format_ymdhms(time_range[0])} .. {format_ymdhms(time_range[1])}"
        )

    daily = store.select_daily_counts(start, end, keyword)
    lines.append("")
    lines.append(f"Daily visits ({sum(count for _, count in daily)} total)")
    for day_ms, count in daily:
        lines.append(f"  {format_ymd(day_ms)}  {count}")

    lines.append("")
    lines.append("Top domains")
    lines.extend(_render_ranking(store.select_top_n_by_domain(start, end, keyword, top_n)))

    lines.append("")
    lines.append("Top titles")
    lines.extend(_render_ranking(store.select_top_n_by_title(start, end, keyword, top_n)))

    return "\n".join(lines)


def _render_ranking(entries: list[tuple[str, int]]) -> list[str]:
    if not entries:
        return ["  (none)"]
    return [f"  {rank}. {label}  {count}" for rank, (label, count) in enumerate(entries, start=1)]
