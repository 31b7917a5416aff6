"""UTC clock.

Timestamps are stored as naive UTC in ``DateTime`` columns without a zone.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
