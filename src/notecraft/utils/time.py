"""Time utilities for Notecraft.

Provides timezone-aware datetime helpers shared by the monitoring and
persistence layers.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime.

    Returns:
        datetime: Current UTC time with tzinfo=UTC
    """
    return datetime.now(UTC)


def epoch_ms(moment: datetime) -> int:
    """Milliseconds since the Unix epoch for a timezone-aware datetime."""
    return int(moment.timestamp() * 1000)


def file_timestamp(moment: datetime | None = None) -> str:
    """Filesystem-safe UTC timestamp, e.g. ``2025-01-15T10-30-00-123456Z``."""
    moment = (moment or utc_now()).astimezone(UTC)
    return moment.strftime("%Y-%m-%dT%H-%M-%S-%fZ")
