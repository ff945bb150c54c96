"""
Base Model Classes
==================

Shared base class and helpers for all SQLAlchemy models.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy.orm import DeclarativeBase


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Some drivers (SQLite) hand back naive values; those are stored as UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    SQLAlchemy declarative base for all models.
    """
