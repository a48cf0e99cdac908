"""Process-level wiring of the authorization engine.

One :class:`RbacEngine` is built per process (or per settings object) and
shared. It owns the stateless collaborators plus the two pieces of
process-wide state: the effective-permissions cache and the per-user
assignment locks. Session-bound services are created per request through
:meth:`RbacEngine.store` and :meth:`RbacEngine.assignments`.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from teamchat_rbac.settings import Settings, get_settings

from .assignments import AssignmentCoordinator, AssignmentLocks
from .audit import AuditTrail
from .cache import EffectivePermissionsCache
from .catalog import PermissionCatalog
from .conflicts import ConflictDetector
from .hierarchy import HierarchyResolver
from .resolver import PermissionResolver
from .store import RoleStore

logger = logging.getLogger(__name__)


class RbacEngine:
    def __init__(
        self,
        *,
        settings: Settings,
        catalog: PermissionCatalog | None = None,
        cache: EffectivePermissionsCache | None = None,
    ) -> None:
        self.settings = settings
        self.catalog = catalog or PermissionCatalog()
        self.cache = cache or EffectivePermissionsCache(
            max_entries=settings.permission_cache_max_entries,
            enabled=settings.permission_cache_enabled,
        )
        self.locks = AssignmentLocks()
        self.hierarchy = HierarchyResolver(
            catalog=self.catalog,
            top_authority_slug=settings.top_authority_role_slug,
        )
        self.resolver = PermissionResolver(catalog=self.catalog, cache=self.cache)
        self.detector = ConflictDetector(catalog=self.catalog)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> RbacEngine:
        settings = settings or get_settings()
        logger.debug(
            "rbac.engine.init",
            extra={
                "top_authority_role": settings.top_authority_role_slug,
                "default_role": settings.default_role_slug,
                "cache_enabled": settings.permission_cache_enabled,
            },
        )
        return cls(settings=settings)

    def store(self, session: AsyncSession) -> RoleStore:
        return RoleStore(session, catalog=self.catalog, cache=self.cache, settings=self.settings)

    def assignments(self, session: AsyncSession) -> AssignmentCoordinator:
        return AssignmentCoordinator(
            session,
            store=self.store(session),
            catalog=self.catalog,
            hierarchy=self.hierarchy,
            resolver=self.resolver,
            detector=self.detector,
            locks=self.locks,
        )

    def audit(self, session: AsyncSession) -> AuditTrail:
        return AuditTrail(session)

    async def bootstrap(self, session: AsyncSession) -> None:
        """Seed the permission table and built-in roles (idempotent)."""

        await self.store(session).sync_system_roles()


__all__ = ["RbacEngine"]
