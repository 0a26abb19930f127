#!/usr/bin/env python3
"""
Shared SQLAlchemy base and mixins for the user account service.

- UUID primary key (String(36)) with defaults
- created_at / updated_at timestamps, always timezone-aware UTC in Python
- to_dict() that formats timestamps, removes SA internals and secrets

Notes:
- SQLite drops tzinfo on DateTime columns, so UTCDateTime stores naive UTC
  and re-attaches timezone.utc on load. Postgres behaves the same way.
"""

from __future__ import annotations

from datetime import datetime, timezone
import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

TIME_FMT = "%Y-%m-%dT%H:%M:%S.%f"

# Columns never exposed by to_dict()
SECRET_FIELDS = (
    "password_hash",
    "verification_token",
    "reset_password_token",
    "token",
)

# Declarative base for all models
Base = declarative_base()


def utcnow() -> datetime:
    """Timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def _uuid_str() -> str:
    """Return a canonical UUIDv4 string (36 chars, with hyphens)."""
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """DateTime column that round-trips aware UTC datetimes on every backend."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime given to a UTC column")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class BaseModel:
    """
    Base mixin for all persistent models.

    - id, created_at, updated_at
    - to_dict() with __class__ and timestamp formatting
    Persistence goes through the stores in services.stores, not through the
    instances themselves.
    """

    id = Column(String(36), primary_key=True, default=_uuid_str, nullable=False)
    created_at = Column(UTCDateTime, default=utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __init__(self, *args, **kwargs):
        """
        Allow attribute initialization via kwargs without requiring a session here.
        Timestamps are set in Python so they are readable before the first flush.
        """
        for key, value in kwargs.items():
            if key != "__class__":
                setattr(self, key, value)
        if getattr(self, "id", None) is None:
            self.id = _uuid_str()
        now = utcnow()
        if getattr(self, "created_at", None) is None:
            self.created_at = now
        if getattr(self, "updated_at", None) is None:
            self.updated_at = now

    def __str__(self) -> str:
        """Human-friendly representation including id and fields."""
        return f"[{self.__class__.__name__}] ({self.id}) {self.to_dict()}"

    def touch(self):
        """Bump updated_at; used before flushing an in-place mutation."""
        self.updated_at = utcnow()

    def to_dict(self) -> dict:
        """
        Return a dictionary of fields suitable for logs and debugging:
        - Adds __class__
        - Formats datetimes to TIME_FMT
        - Removes SQLAlchemy internal state and secret columns
        """
        d = {
            k: v
            for k, v in self.__dict__.items()
            if k != "_sa_instance_state" and k not in SECRET_FIELDS
        }
        for key, value in list(d.items()):
            if isinstance(value, datetime):
                d[key] = value.strftime(TIME_FMT)
        d["__class__"] = self.__class__.__name__
        return d
