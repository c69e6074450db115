"""Human-readable renderings for hazard cards and alerts."""

from __future__ import annotations

from datetime import datetime, timedelta


def format_time_remaining(remaining: timedelta | None) -> str:
    """Render the time left before auto-resolution (``"1d 3h"``, ``"5h 12m"``, ``"40m"``)."""
    if remaining is None:
        return ""
    total_minutes = max(0, int(remaining.total_seconds() // 60))
    days, rest = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_relative_time(timestamp: datetime, now: datetime) -> str:
    """Render how long ago *timestamp* was relative to *now*."""
    minutes = int((now - timestamp).total_seconds() // 60)
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{minutes} min ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = hours // 24
    return f"{days} day{'s' if days != 1 else ''} ago"
