"""Database plumbing (SQLAlchemy engines, sessions, base classes, types)."""

from .base import NAMING_CONVENTION, Base, TimestampMixin, UUIDPrimaryKeyMixin, metadata, utc_now
from .engine import (
    create_engine,
    create_schema,
    ensure_sqlite_database_directory,
    get_engine,
    is_sqlite_memory_url,
    reset_database_state,
)
from .session import build_sessionmaker, get_sessionmaker, reset_session_state, session_scope
from .types import UTCDateTime, UUIDType

__all__ = [
    "Base",
    "NAMING_CONVENTION",
    "metadata",
    "utc_now",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "create_engine",
    "create_schema",
    "ensure_sqlite_database_directory",
    "get_engine",
    "is_sqlite_memory_url",
    "reset_database_state",
    "build_sessionmaker",
    "get_sessionmaker",
    "reset_session_state",
    "session_scope",
    "UTCDateTime",
    "UUIDType",
]
