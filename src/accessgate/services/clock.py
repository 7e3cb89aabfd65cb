"""Expiry evaluation over stored timestamps.

Everything here is pure: callers pass ``now`` in so a single request sees one
consistent instant, and tests can pin time without patching.
"""

import math
from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Tag naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_expired(now: datetime, expires_at: datetime) -> bool:
    """True once ``now`` has reached ``expires_at``. There is no grace period."""
    return as_utc(now) >= as_utc(expires_at)


def is_valid(now: datetime, expires_at: datetime) -> bool:
    """True while ``now`` is strictly before ``expires_at``."""
    return not is_expired(now, expires_at)


def remaining_seconds(now: datetime, expires_at: datetime) -> int:
    """Whole seconds left before expiry, rounded up while still valid."""
    delta = (as_utc(expires_at) - as_utc(now)).total_seconds()
    if delta <= 0:
        return 0
    return math.ceil(delta)
