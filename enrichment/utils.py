# enrichment/utils.py
"""
Shared utility functions used across the codebase.
"""
from __future__ import annotations

from datetime import UTC, datetime


def utc_now_iso() -> str:
    """
    Return the current UTC time as an ISO 8601 string with 'Z' suffix.

    Example: "2025-01-15T14:30:00Z"
    """
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_utc_dt(value: object) -> datetime | None:
    """Best-effort parse for stored timestamps (ISO strings, datetimes, epoch seconds)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value), tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s.replace(" ", "T"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        return dt.astimezone(UTC)
    return None


__all__ = [
    "utc_now_iso",
    "parse_utc_dt",
]
