# src/tokenline/db/time.py
"""Clock helpers shared by models and the Redis-backed services."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def epoch_millis(timestamp: float) -> int:
    """Convert a POSIX timestamp in seconds to whole milliseconds."""
    return int(timestamp * 1000)


def whole_seconds_between(earlier_ms: int, later_ms: int) -> int:
    # Truncates toward zero; a clock that went backwards yields 0.
    return max(0, later_ms - earlier_ms) // 1000
