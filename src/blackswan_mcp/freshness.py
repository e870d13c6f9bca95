"""Human-readable data age for run timestamps."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

_MINUTE_MS = 60_000


def format_data_age(created_at: datetime, now: datetime | None = None) -> str:
    """Format elapsed time as "just now", "N minutes ago", "N hours ago", "N days ago".

    Every boundary uses floor division of elapsed milliseconds. A created_at in
    the future (clock skew) is reported as "just now".
    """
    current = now or datetime.now(UTC)
    elapsed_ms = (current - created_at) // timedelta(milliseconds=1)

    minutes = elapsed_ms // _MINUTE_MS
    if minutes < 1:
        return "just now"
    if minutes == 1:
        return "1 minute ago"
    if minutes < 60:
        return f"{minutes} minutes ago"

    hours = minutes // 60
    if hours == 1:
        return "1 hour ago"
    if hours < 24:
        return f"{hours} hours ago"

    days = hours // 24
    if days == 1:
        return "1 day ago"
    return f"{days} days ago"
