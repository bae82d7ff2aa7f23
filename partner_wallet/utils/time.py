"""Time utilities."""
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return current UTC time with timezone awareness."""

    return datetime.now(tz=UTC)


def epoch_millis(value: datetime | None = None) -> int:
    """Return milliseconds since the Unix epoch for ``value`` (default: now)."""

    moment = value or utcnow()
    return int(moment.timestamp() * 1000)


__all__ = ["utcnow", "epoch_millis"]
