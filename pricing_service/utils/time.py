"""Time utilities (UTC now, naive→aware normalization, elapsed formatting)."""
from __future__ import annotations
from datetime import datetime, timezone

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def ensure_aware(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)

def elapsed_ms(start: datetime, end: datetime | None = None) -> float:
    end_ts = ensure_aware(end) or utc_now()
    return round((end_ts - ensure_aware(start)).total_seconds() * 1000, 2)  # type: ignore[operator]

def format_elapsed(start: datetime, end: datetime | None = None) -> str:
    ms = elapsed_ms(start, end)
    if ms < 1000:
        return f"{int(ms)}ms"
    if ms < 60_000:
        return f"{ms/1000:.2f}s"
    return f"{ms/60_000:.2f}m"

__all__ = ["utc_now", "ensure_aware", "elapsed_ms", "format_elapsed"]
