from __future__ import annotations

import pytest
from pydantic import ValidationError

from teamchat_rbac.settings import DEFAULT_DATABASE_URL, Settings, get_settings, reload_settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "TEAMCHAT_RBAC_DATABASE_URL",
        "TEAMCHAT_RBAC_LOGGING_LEVEL",
        "TEAMCHAT_RBAC_TOP_AUTHORITY_ROLE_SLUG",
        "TEAMCHAT_RBAC_PERMISSION_CACHE_MAX_ENTRIES",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    reload_settings()


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.database_url == DEFAULT_DATABASE_URL
    assert settings.top_authority_role_slug == "owner"
    assert settings.default_role_slug == "member"
    assert settings.permission_cache_enabled
    assert settings.permission_cache_max_entries == 1024


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEAMCHAT_RBAC_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("TEAMCHAT_RBAC_LOGGING_LEVEL", "debug")
    monkeypatch.setenv("TEAMCHAT_RBAC_TOP_AUTHORITY_ROLE_SLUG", "  Founder ")

    settings = Settings(_env_file=None)

    assert settings.database_url == "sqlite+aiosqlite:///:memory:"
    assert settings.logging_level == "DEBUG"
    assert settings.top_authority_role_slug == "founder"


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, database_url="not a url at all")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, default_role_slug="   ")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, permission_cache_max_entries=0)


def test_reload_settings_picks_up_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    reload_settings()
    assert get_settings() is get_settings()

    monkeypatch.setenv("TEAMCHAT_RBAC_PERMISSION_CACHE_MAX_ENTRIES", "16")
    assert reload_settings().permission_cache_max_entries == 16
