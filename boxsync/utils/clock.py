from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in every timestamp column."""
    return datetime.now(UTC).replace(tzinfo=None)


def utc_from_timestamp(timestamp: float) -> datetime:
    """Naive UTC datetime for a POSIX timestamp."""
    return datetime.fromtimestamp(timestamp, UTC).replace(tzinfo=None)
