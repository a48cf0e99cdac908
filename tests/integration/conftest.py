from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from teamchat_rbac.db import build_sessionmaker, create_engine, create_schema
from teamchat_rbac.features.rbac import RbacEngine
from teamchat_rbac.models import Role
from teamchat_rbac.settings import Settings


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None, database_url="sqlite+aiosqlite:///:memory:")


@pytest_asyncio.fixture()
async def db_engine(settings: Settings) -> AsyncIterator[AsyncEngine]:
    engine = create_engine(settings)
    await create_schema(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_sessionmaker(db_engine)


@pytest.fixture()
def rbac(settings: Settings) -> RbacEngine:
    return RbacEngine(settings=settings)


@pytest_asyncio.fixture()
async def session(
    session_factory: async_sessionmaker[AsyncSession],
    rbac: RbacEngine,
) -> AsyncIterator[AsyncSession]:
    """Session over a freshly seeded database (permission table plus built-in roles)."""

    async with session_factory() as session:
        await rbac.bootstrap(session)
        await session.commit()
        yield session


@pytest_asyncio.fixture()
async def built_in(session: AsyncSession, rbac: RbacEngine) -> dict[str, Role]:
    roles = await rbac.store(session).list_roles()
    return {role.slug: role for role in roles}


@pytest.fixture()
def file_settings(tmp_path: Path) -> Settings:
    return Settings(_env_file=None, database_url=f"sqlite+aiosqlite:///{tmp_path / 'rbac.sqlite'}")
