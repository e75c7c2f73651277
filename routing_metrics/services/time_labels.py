import math
from datetime import datetime, timezone


def countdown_label(next_at: float | None, now: float, enabled: bool) -> str:
    """Text for the "next refresh" indicator. Times are epoch seconds."""
    if not enabled:
        return "Auto-refresh is off"
    if next_at is None:
        return "Scheduling..."
    remaining = math.ceil(max(0.0, next_at - now))
    clock = datetime.fromtimestamp(next_at, tz=timezone.utc).strftime("%H:%M:%S")
    return f"Next refresh in {remaining}s (at {clock})"


def relative_age_label(timestamp: datetime, now: datetime) -> str:
    """How long ago ``timestamp`` was, e.g. "3 min ago"."""
    seconds = int((now - timestamp).total_seconds())
    if seconds < 5:
        return "just now"
    if seconds < 60:
        return f"{seconds} sec ago"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes} min ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hours ago"
    return f"{hours // 24} days ago"
