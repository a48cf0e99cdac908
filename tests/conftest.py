"""Shared pytest fixtures for engine tests."""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from teamchat_rbac.features.rbac import HierarchyResolver, PermissionCatalog, RoleSnapshot


def pytest_collection_modifyitems(config, items) -> None:
    for item in items:
        path_str = Path(str(item.fspath)).as_posix()
        if "/tests/integration/" in path_str:
            item.add_marker(pytest.mark.integration)
        elif "/tests/unit/" in path_str:
            item.add_marker(pytest.mark.unit)


@pytest.fixture()
def catalog() -> PermissionCatalog:
    return PermissionCatalog()


@pytest.fixture()
def hierarchy(catalog: PermissionCatalog) -> HierarchyResolver:
    return HierarchyResolver(catalog=catalog, top_authority_slug="owner")


@pytest.fixture()
def make_role() -> Callable[..., RoleSnapshot]:
    """Build detached roles; each call is created one second after the previous one."""

    base = datetime(2025, 1, 1, tzinfo=UTC)
    counter = itertools.count()

    def _make(
        name: str,
        position: int,
        permissions: Iterable[str] = (),
        *,
        built_in: bool = False,
        slug: str | None = None,
        version: int = 1,
        created_at: datetime | None = None,
    ) -> RoleSnapshot:
        return RoleSnapshot(
            name=name,
            position=position,
            permission_keys=frozenset(permissions),
            slug=slug or name.lower(),
            created_at=created_at or base + timedelta(seconds=next(counter)),
            version=version,
            is_built_in=built_in,
        )

    return _make
