"""Effective-permission computation and the authorization gate helpers."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import Any

from teamchat_rbac.core.rbac.errors import InvariantViolationError
from teamchat_rbac.core.rbac.registry import ADMINISTRATOR

from .cache import EffectivePermissionsCache, cache_key
from .catalog import PermissionCatalog
from .hierarchy import sort_roles_by_position
from .snapshots import RoleLike, RoleSnapshot, unique_roles

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectivePermissions:
    """A user's resolved permissions; derived, never stored."""

    user_id: Any
    permissions: frozenset[str]
    granted: frozenset[str]
    roles: tuple[RoleSnapshot, ...]
    highest_role: RoleSnapshot
    is_administrator: bool

    def has(self, key: str) -> bool:
        return key in self.permissions

    def __contains__(self, key: object) -> bool:
        return key in self.permissions


@dataclass(frozen=True)
class AuthorizationDecision:
    """Result of an authorization evaluation."""

    granted: frozenset[str]
    required: tuple[str, ...]
    missing: tuple[str, ...]

    @property
    def is_authorized(self) -> bool:
        return not self.missing


class PermissionResolver:
    """Computes effective permissions from a user's assigned roles."""

    def __init__(
        self,
        *,
        catalog: PermissionCatalog,
        cache: EffectivePermissionsCache | None = None,
    ) -> None:
        self._catalog = catalog
        self._cache = cache

    @property
    def cache(self) -> EffectivePermissionsCache | None:
        return self._cache

    def compute_effective_permissions(
        self,
        assigned_roles: Iterable[RoleLike],
        *,
        user_id: Any = None,
    ) -> EffectivePermissions:
        """Union every assigned role's permissions.

        ``administrator`` expands to the whole catalog. An empty role set is an
        upstream bug: every user holds at least the default role.
        """

        roles = unique_roles(assigned_roles)
        if not roles:
            logger.warning("rbac.effective.empty_roles", extra={"user_id": str(user_id)})
            raise InvariantViolationError(
                f"User {user_id} has no assigned roles; every user must hold at least one role"
                if user_id is not None
                else "Effective permissions require at least one assigned role"
            )

        key = cache_key(roles)
        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                return replace(cached, user_id=user_id)

        granted: set[str] = set()
        for role in roles:
            granted.update(role.permission_keys)

        is_administrator = ADMINISTRATOR in granted
        permissions = frozenset(granted | self._catalog.keys()) if is_administrator else frozenset(granted)

        ordered = tuple(RoleSnapshot.from_role(role) for role in sort_roles_by_position(roles))
        result = EffectivePermissions(
            user_id=user_id,
            permissions=permissions,
            granted=frozenset(granted),
            roles=ordered,
            highest_role=ordered[0],
            is_administrator=is_administrator,
        )

        if self._cache is not None:
            self._cache.put(key, replace(result, user_id=None))
        return result

    def authorize(
        self,
        effective: EffectivePermissions,
        required: str | Iterable[str],
    ) -> AuthorizationDecision:
        """Check ``required`` keys against ``effective``; unknown keys raise NotFound."""

        keys = (required,) if isinstance(required, str) else tuple(required)
        for key in keys:
            self._catalog.get(key)
        missing = tuple(key for key in keys if key not in effective.permissions)
        return AuthorizationDecision(
            granted=effective.permissions,
            required=keys,
            missing=missing,
        )

    def has_permission(self, effective: EffectivePermissions, key: str) -> bool:
        self._catalog.get(key)
        return key in effective.permissions


__all__ = ["AuthorizationDecision", "EffectivePermissions", "PermissionResolver"]
