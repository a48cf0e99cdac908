"""Async engine management."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from teamchat_rbac.settings import Settings, get_settings

from .base import metadata

_ENGINE: AsyncEngine | None = None
_ENGINE_KEY: tuple[Any, ...] | None = None

logger = logging.getLogger(__name__)


def _cache_key(settings: Settings) -> tuple[Any, ...]:
    return (
        settings.database_url,
        settings.database_echo,
        settings.database_pool_timeout,
    )


def is_sqlite_memory_url(url: URL) -> bool:
    database = (url.database or "").strip()
    if not database or database == ":memory:":
        return True
    if database.startswith("file:"):
        query = dict(url.query or {})
        if query.get("mode") == "memory":
            return True
    return False


def ensure_sqlite_database_directory(url: URL) -> None:
    """Ensure a filesystem-backed SQLite database can be created."""

    database = (url.database or "").strip()
    if not database or database == ":memory:" or database.startswith("file:"):
        return
    path = Path(database)
    if not path.is_absolute():
        path = Path.cwd() / path
    path.parent.mkdir(parents=True, exist_ok=True)


def create_engine(settings: Settings) -> AsyncEngine:
    """Build a new async engine for ``settings`` (uncached)."""

    url = make_url(settings.database_url)
    connect_args: dict[str, Any] = {}
    engine_kwargs: dict[str, Any] = {
        "echo": settings.database_echo,
        "pool_pre_ping": True,
    }

    is_sqlite = url.get_backend_name() == "sqlite"
    memory = is_sqlite and is_sqlite_memory_url(url)
    if is_sqlite:
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = settings.database_pool_timeout
        engine_kwargs["poolclass"] = StaticPool if memory else NullPool
        if not memory:
            ensure_sqlite_database_directory(url)
    else:
        engine_kwargs["pool_timeout"] = settings.database_pool_timeout

    if connect_args:
        engine_kwargs["connect_args"] = connect_args

    engine = create_async_engine(url.render_as_string(hide_password=False), **engine_kwargs)

    if is_sqlite:

        @event.listens_for(engine.sync_engine, "connect")
        def _set_sqlite_pragma(dbapi_connection, _connection_record) -> None:
            # The driver's implicit BEGIN breaks SAVEPOINT; SQLAlchemy emits BEGIN instead.
            dbapi_connection.isolation_level = None
            cursor = dbapi_connection.cursor()
            try:
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.execute(f"PRAGMA busy_timeout={settings.database_pool_timeout * 1000}")
                if not memory:
                    cursor.execute("PRAGMA journal_mode=WAL")
            finally:
                cursor.close()

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_sqlite_transaction(connection) -> None:
            connection.exec_driver_sql("BEGIN")

    logger.debug(
        "db.engine.created",
        extra={"backend": url.get_backend_name(), "memory": memory},
    )
    return engine


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    """Return a cached async engine matching the active settings."""

    global _ENGINE, _ENGINE_KEY
    settings = settings or get_settings()
    key = _cache_key(settings)
    if _ENGINE is None or _ENGINE_KEY != key:
        if _ENGINE is not None:
            _ENGINE.sync_engine.dispose()
        _ENGINE = create_engine(settings)
        _ENGINE_KEY = key
    return _ENGINE


async def create_schema(engine: AsyncEngine) -> None:
    """Create every engine table that does not exist yet."""

    # Register mappers on the shared metadata before create_all.
    from teamchat_rbac import models  # noqa: F401

    async with engine.begin() as connection:
        await connection.run_sync(metadata.create_all)
    logger.info("db.schema.ready", extra={"tables": len(metadata.tables)})


def reset_database_state() -> None:
    """Dispose the cached engine and associated session factories."""

    global _ENGINE, _ENGINE_KEY
    if _ENGINE is not None:
        _ENGINE.sync_engine.dispose()
    _ENGINE = None
    _ENGINE_KEY = None

    from . import session as session_module

    session_module.reset_session_state()


def engine_cache_key(settings: Settings) -> tuple[Any, ...]:
    """Expose the cache key used for engine/session reuse."""

    return _cache_key(settings)


__all__ = [
    "create_engine",
    "create_schema",
    "engine_cache_key",
    "ensure_sqlite_database_directory",
    "get_engine",
    "is_sqlite_memory_url",
    "reset_database_state",
]
