"""Persistent role CRUD: validation, ordering, versioning, and registry sync."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from teamchat_rbac.common.logging import log_context
from teamchat_rbac.core.rbac.errors import (
    InvariantViolationError,
    RoleConflictError,
    RoleForbiddenError,
    RoleNotFoundError,
    RoleValidationError,
)
from teamchat_rbac.core.rbac.registry import SYSTEM_ROLES
from teamchat_rbac.core.rbac.types import AuditAction, AuditTargetType
from teamchat_rbac.db.base import utc_now
from teamchat_rbac.models import DEFAULT_ROLE_COLOR, Permission, Role, RolePermission, UserRoleAssignment
from teamchat_rbac.settings import Settings, get_settings

from .audit import AuditTrail, role_state
from .cache import EffectivePermissionsCache
from .catalog import PermissionCatalog
from .schemas import RoleCreate, RoleUpdate
from .validator import RoleDraft, RoleValidationReport, changed_protected_fields, validate_role

logger = logging.getLogger(__name__)

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


def _slugify(value: str) -> str:
    candidate = _SLUG_PATTERN.sub("-", value.lower()).strip("-")
    return re.sub(r"-{2,}", "-", candidate)


def _normalize_description(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


class RoleStore:
    """Role lifecycle bound to one ``AsyncSession``.

    The store flushes but never commits; the caller owns the transaction.
    Cache invalidation for a changed role fires when that transaction commits.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        catalog: PermissionCatalog,
        cache: EffectivePermissionsCache | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session = session
        self._catalog = catalog
        self._cache = cache
        self._settings = settings or get_settings()
        self._audit = AuditTrail(session)

    # ------------- registry sync -----------------

    async def sync_permission_registry(self) -> None:
        """Upsert the catalog into the ``permissions`` table."""

        logger.debug("rbac.permissions.sync.start")

        result = await self._session.execute(select(Permission))
        existing = {permission.key: permission for permission in result.scalars().all()}

        for definition in self._catalog:
            current = existing.get(definition.key)
            if current is None:
                self._session.add(
                    Permission(
                        key=definition.key,
                        category=definition.category,
                        label=definition.label,
                        description=definition.description,
                        is_dangerous=definition.is_dangerous,
                        requires_admin=definition.requires_admin,
                    )
                )
                continue

            current.category = definition.category
            current.label = definition.label
            current.description = definition.description
            current.is_dangerous = definition.is_dangerous
            current.requires_admin = definition.requires_admin

        stale_keys = set(existing) - set(self._catalog.keys())
        if stale_keys:
            await self._session.execute(
                delete(RolePermission).where(RolePermission.permission_key.in_(tuple(stale_keys)))
            )
            await self._session.execute(
                delete(Permission).where(Permission.key.in_(tuple(stale_keys)))
            )

        await self._session.flush()

        logger.debug(
            "rbac.permissions.sync.success",
            extra={"total": len(self._catalog), "removed": len(stale_keys)},
        )

    async def sync_system_roles(self) -> list[Role]:
        """Ensure built-in roles exist with their canonical definition."""

        logger.debug("rbac.system_roles.sync.start")
        await self.sync_permission_registry()

        roles: list[Role] = []
        for definition in SYSTEM_ROLES:
            role = await self.get_role_by_slug(definition.slug)
            if role is None:
                role = Role(
                    slug=definition.slug,
                    name=definition.name,
                    description=definition.description,
                    color=definition.color,
                    position=definition.position,
                    is_default=definition.is_default,
                    is_mentionable=definition.is_mentionable,
                    is_built_in=True,
                    permissions=[
                        RolePermission(permission_key=key)
                        for key in self._catalog.sort_keys(definition.permissions)
                    ],
                )
                self._session.add(role)
                logger.info(
                    "rbac.system_roles.sync.created",
                    extra=log_context(slug=definition.slug, position=definition.position),
                )
            else:
                role.name = definition.name
                role.description = definition.description
                role.position = definition.position
                role.is_built_in = True
                if self._sync_role_permissions(role, definition.permissions):
                    role.updated_at = utc_now()
                    self._schedule_invalidation(role)
            roles.append(role)

        await self._session.flush()
        logger.debug("rbac.system_roles.sync.success", extra={"total": len(roles)})
        return roles

    # ------------- reads -------------------------

    async def list_roles(self) -> list[Role]:
        """Return every role; ordering is the hierarchy resolver's concern."""

        result = await self._session.execute(select(Role))
        return list(result.scalars().all())

    async def get_role(self, role_id: UUID, *, refresh: bool = False) -> Role | None:
        """Load a role; ``refresh`` overwrites any copy already in the identity map."""

        stmt = select(Role).where(Role.id == role_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def require_role(self, role_id: UUID, *, refresh: bool = False) -> Role:
        role = await self.get_role(role_id, refresh=refresh)
        if role is None:
            raise RoleNotFoundError(f"Role {role_id} not found")
        return role

    async def get_role_by_slug(self, slug: str) -> Role | None:
        result = await self._session.execute(select(Role).where(Role.slug == slug).limit(1))
        return result.scalar_one_or_none()

    async def get_roles(self, role_ids: Iterable[UUID]) -> list[Role]:
        ids = tuple(dict.fromkeys(role_ids))
        if not ids:
            return []
        result = await self._session.execute(select(Role).where(Role.id.in_(ids)))
        return list(result.scalars().all())

    async def default_roles(self) -> list[Role]:
        """Roles granted to new users: every ``is_default`` role, else the configured slug."""

        result = await self._session.execute(select(Role).where(Role.is_default.is_(True)))
        roles = list(result.scalars().all())
        if roles:
            return roles
        fallback = await self.get_role_by_slug(self._settings.default_role_slug)
        return [fallback] if fallback is not None else []

    # ------------- validation previews -----------

    async def check_create(self, payload: RoleCreate) -> RoleValidationReport:
        return validate_role(self._draft_for_create(payload), catalog=self._catalog)

    async def check_update(self, role_id: UUID, patch: RoleUpdate) -> RoleValidationReport:
        role = await self.require_role(role_id)
        return validate_role(self._draft_for_update(role, patch), catalog=self._catalog, existing=role)

    # ------------- writes ------------------------

    async def create_role(self, payload: RoleCreate, *, actor_id: str | None = None) -> Role:
        report = await self.check_create(payload)
        if not report.is_valid:
            logger.info(
                "rbac.role.create.invalid",
                extra=log_context(errors=list(report.errors), actor=actor_id),
            )
            raise RoleValidationError(report.errors, report.warnings)

        name = payload.name.strip()
        slug = _slugify(name) or "role"
        await self._ensure_unique(name=name, slug=slug)

        position = payload.position if payload.position is not None else await self._next_position()
        role = Role(
            slug=slug,
            name=name,
            description=_normalize_description(payload.description),
            color=payload.color or DEFAULT_ROLE_COLOR,
            icon=payload.icon,
            position=position,
            is_default=payload.is_default,
            is_mentionable=payload.is_mentionable,
            is_built_in=False,
            created_by=actor_id,
            updated_by=actor_id,
            permissions=[
                RolePermission(permission_key=key)
                for key in self._catalog.sort_keys(payload.permissions)
            ],
        )

        try:
            async with self._session.begin_nested():
                self._session.add(role)
                await self._session.flush()
                self._audit.record(
                    action=AuditAction.CREATE,
                    target_type=AuditTargetType.ROLE,
                    target_id=role.id,
                    role_id=role.id,
                    actor_id=actor_id,
                    new_value=role_state(role),
                )
                await self._session.flush()
        except IntegrityError as exc:
            raise RoleConflictError(f"Role '{name}' conflicts with an existing role") from exc

        logger.info(
            "rbac.role.create.success",
            extra=log_context(
                role_id=role.id,
                slug=role.slug,
                position=role.position,
                permissions=len(role.permissions),
                warnings=len(report.warnings),
                actor=actor_id,
            ),
        )
        return role

    async def update_role(
        self,
        role_id: UUID,
        patch: RoleUpdate,
        *,
        expected_version: int,
        actor_id: str | None = None,
    ) -> Role:
        role = await self.require_role(role_id, refresh=True)
        if role.version != expected_version:
            logger.info(
                "rbac.role.update.stale",
                extra=log_context(role_id=role.id, expected=expected_version, current=role.version),
            )
            raise RoleConflictError(
                f"Role '{role.name}' was modified concurrently "
                f"(expected version {expected_version}, current version {role.version})"
            )

        draft = self._draft_for_update(role, patch)
        if role.is_built_in:
            touched = changed_protected_fields(role, draft)
            if touched:
                raise RoleForbiddenError(
                    f"Built-in role '{role.name}' cannot change {', '.join(touched)}"
                )

        report = validate_role(draft, catalog=self._catalog, existing=role)
        if not report.is_valid:
            logger.info(
                "rbac.role.update.invalid",
                extra=log_context(role_id=role.id, errors=list(report.errors)),
            )
            raise RoleValidationError(report.errors, report.warnings)

        before = role_state(role)
        fields = patch.model_fields_set
        if "name" in fields and patch.name is not None:
            name = patch.name.strip()
            if name != role.name:
                slug = _slugify(name) or "role"
                await self._ensure_unique(name=name, slug=slug, exclude_id=role.id)
                role.name = name
                role.slug = slug
        if "description" in fields:
            role.description = _normalize_description(patch.description)
        if "color" in fields:
            role.color = patch.color or DEFAULT_ROLE_COLOR
        if "icon" in fields:
            role.icon = patch.icon
        if "position" in fields and patch.position is not None:
            role.position = patch.position
        if "is_default" in fields and patch.is_default is not None:
            role.is_default = patch.is_default
        if "is_mentionable" in fields and patch.is_mentionable is not None:
            role.is_mentionable = patch.is_mentionable
        if "permissions" in fields and patch.permissions is not None:
            self._sync_role_permissions(role, patch.permissions)

        # Always touch the row so a permissions-only change still bumps the version.
        role.updated_at = utc_now()
        role.updated_by = actor_id

        try:
            async with self._session.begin_nested():
                await self._session.flush()
                self._audit.record(
                    action=AuditAction.MODIFY,
                    target_type=AuditTargetType.ROLE,
                    target_id=role.id,
                    role_id=role.id,
                    actor_id=actor_id,
                    old_value=before,
                    new_value=role_state(role),
                )
                await self._session.flush()
        except StaleDataError as exc:
            raise RoleConflictError(f"Role '{role.name}' was modified concurrently") from exc
        except IntegrityError as exc:
            raise RoleConflictError(f"Role '{role.name}' conflicts with an existing role") from exc

        self._schedule_invalidation(role)
        logger.info(
            "rbac.role.update.success",
            extra=log_context(
                role_id=role.id,
                version=role.version,
                fields=sorted(fields),
                actor=actor_id,
            ),
        )
        return role

    async def delete_role(self, role_id: UUID, *, actor_id: str | None = None) -> int:
        """Delete a custom role and every assignment of it; return the assignments removed.

        Users left without any role receive the default role in the same
        transaction.
        """

        role = await self.require_role(role_id)
        if role.is_built_in:
            raise RoleForbiddenError(f"Built-in role '{role.name}' cannot be deleted")

        before = role_state(role)
        async with self._session.begin_nested():
            holders_result = await self._session.execute(
                select(UserRoleAssignment.user_id).where(UserRoleAssignment.role_id == role.id)
            )
            holders = set(holders_result.scalars().all())

            removed = await self._session.execute(
                delete(UserRoleAssignment).where(UserRoleAssignment.role_id == role.id)
            )
            await self._session.delete(role)
            await self._session.flush()

            backfilled = await self._backfill_default_roles(holders, deleted=role)
            self._audit.record(
                action=AuditAction.DELETE,
                target_type=AuditTargetType.ROLE,
                target_id=role.id,
                role_id=role.id,
                actor_id=actor_id,
                old_value=before,
                new_value={"assignments_removed": int(removed.rowcount or 0), "backfilled": backfilled},
            )
            await self._session.flush()

        self._schedule_invalidation(role)
        logger.info(
            "rbac.role.delete.success",
            extra=log_context(
                role_id=role.id,
                assignments=removed.rowcount,
                backfilled=backfilled,
                actor=actor_id,
            ),
        )
        return int(removed.rowcount or 0)

    # ------------- helpers -----------------------

    async def _backfill_default_roles(self, holders: set[str], *, deleted: Role) -> int:
        if not holders:
            return 0

        still_assigned = await self._session.execute(
            select(UserRoleAssignment.user_id)
            .where(UserRoleAssignment.user_id.in_(tuple(holders)))
            .distinct()
        )
        orphaned = sorted(holders - set(still_assigned.scalars().all()))
        if not orphaned:
            return 0

        defaults = await self.default_roles()
        if not defaults:
            raise InvariantViolationError(
                f"Deleting role '{deleted.name}' would leave {len(orphaned)} user(s) "
                "without any role and no default role is configured"
            )

        self._session.add_all(
            UserRoleAssignment(user_id=user_id, role_id=default.id)
            for user_id in orphaned
            for default in defaults
        )
        await self._session.flush()
        return len(orphaned)

    def _sync_role_permissions(self, role: Role, permission_keys: Sequence[str]) -> bool:
        current = {link.permission_key: link for link in role.permissions}
        desired = set(permission_keys)

        additions = desired - set(current)
        removals = set(current) - desired

        for key in removals:
            role.permissions.remove(current[key])
        for key in self._catalog.sort_keys(additions):
            role.permissions.append(RolePermission(permission_key=key))
        return bool(additions or removals)

    async def _ensure_unique(self, *, name: str, slug: str, exclude_id: UUID | None = None) -> None:
        stmt = select(Role.id).where(
            (func.lower(Role.name) == name.lower()) | (Role.slug == slug)
        )
        if exclude_id is not None:
            stmt = stmt.where(Role.id != exclude_id)
        result = await self._session.execute(stmt.limit(1))
        if result.scalar_one_or_none() is not None:
            raise RoleConflictError(f"A role named '{name}' already exists")

    async def _next_position(self) -> int:
        result = await self._session.execute(select(func.max(Role.position)))
        current = result.scalar_one_or_none()
        return (current or 0) + 1

    def _schedule_invalidation(self, role: Role) -> None:
        if self._cache is not None:
            self._cache.invalidate_on_commit(self._session, role.id)

    def _draft_for_create(self, payload: RoleCreate) -> RoleDraft:
        return RoleDraft(
            name=payload.name,
            description=payload.description,
            color=payload.color,
            position=payload.position,
            permissions=tuple(payload.permissions),
            is_mentionable=payload.is_mentionable,
        )

    def _draft_for_update(self, role: Role, patch: RoleUpdate) -> RoleDraft:
        fields = patch.model_fields_set

        def pick(name: str, current: object) -> object:
            value = getattr(patch, name)
            return value if name in fields and value is not None else current

        return RoleDraft(
            name=pick("name", role.name),
            description=patch.description if "description" in fields else role.description,
            color=pick("color", role.color),
            position=pick("position", role.position),
            permissions=tuple(pick("permissions", sorted(role.permission_keys))),
            is_mentionable=bool(pick("is_mentionable", role.is_mentionable)),
            is_built_in=bool(pick("is_built_in", role.is_built_in)),
        )


__all__ = ["RoleStore"]
