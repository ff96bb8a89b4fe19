"""Common helper functions for the audit store and recorder."""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import TypeVar

E = TypeVar("E", bound=Enum)


def now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def generate_id() -> uuid.UUID:
    """Generate a unique audit id (UUID4)."""
    return uuid.uuid4()


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps; SQLite drops tzinfo on round-trip."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def coerce_enum(value: str | E, enum_type: type[E]) -> E:
    """Coerce a stored string or enum value to the target enum type.

    The audit store is our own data: an unknown value raises ValueError
    instead of being silently mapped.
    """
    if isinstance(value, enum_type):
        return value
    return enum_type(value)
