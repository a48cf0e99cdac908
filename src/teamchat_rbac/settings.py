"""Engine settings (conventional Pydantic v2 settings)."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

# ---- Defaults ---------------------------------------------------------------

DEFAULT_STORAGE_ROOT = Path("./data")
DEFAULT_DB_FILENAME = "rbac.sqlite"
DEFAULT_DATABASE_URL = f"sqlite+aiosqlite:///{(DEFAULT_STORAGE_ROOT / 'db' / DEFAULT_DB_FILENAME).as_posix()}"
DEFAULT_TOP_AUTHORITY_ROLE = "owner"
DEFAULT_DEFAULT_ROLE = "member"
DEFAULT_PERMISSION_CACHE_SIZE = 1024

LogLevel = Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET"]


# ---- Settings ---------------------------------------------------------------

class Settings(BaseSettings):
    """Authorization engine settings loaded from TEAMCHAT_RBAC_* environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="TEAMCHAT_RBAC_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
    )

    database_url: str = Field(
        default=DEFAULT_DATABASE_URL,
        description="Async SQLAlchemy URL for role and assignment storage.",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements.")
    database_pool_timeout: int = Field(
        default=30,
        ge=1,
        description="Seconds to wait for a pooled connection (SQLite busy timeout).",
    )
    logging_level: LogLevel = Field(
        default="INFO",
        description="Root log level for processes embedding the engine.",
    )

    top_authority_role_slug: str = Field(
        default=DEFAULT_TOP_AUTHORITY_ROLE,
        description="Slug of the built-in role only its own holders may manage.",
    )
    default_role_slug: str = Field(
        default=DEFAULT_DEFAULT_ROLE,
        description="Slug of the built-in role granted to new users.",
    )

    permission_cache_enabled: bool = Field(default=True)
    permission_cache_max_entries: int = Field(default=DEFAULT_PERMISSION_CACHE_SIZE, ge=1)

    @field_validator("logging_level", mode="before")
    @classmethod
    def _upper_level(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("database_url")
    @classmethod
    def _check_database_url(cls, value: str) -> str:
        candidate = value.strip()
        if not candidate:
            raise ValueError("database_url must not be blank")
        try:
            make_url(candidate)
        except ArgumentError as exc:
            raise ValueError(f"database_url is not a valid SQLAlchemy URL: {exc}") from exc
        return candidate

    @field_validator("top_authority_role_slug", "default_role_slug")
    @classmethod
    def _normalize_slug(cls, value: str) -> str:
        candidate = value.strip().lower()
        if not candidate:
            raise ValueError("role slugs must not be blank")
        return candidate


@lru_cache(maxsize=1)
def _build_settings() -> Settings:
    return Settings()


def get_settings() -> Settings:
    return _build_settings()


def reload_settings() -> Settings:
    _build_settings.cache_clear()
    return _build_settings()


__all__ = [
    "DEFAULT_DATABASE_URL",
    "DEFAULT_DB_FILENAME",
    "Settings",
    "get_settings",
    "reload_settings",
]
