"""Advisory scan of a role set for escalation and dangerous-permission exposure."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from teamchat_rbac.core.rbac.registry import ADMINISTRATOR, MANAGE_ROLES, ROLE_MANAGEMENT_PERMISSIONS

from .catalog import PermissionCatalog
from .hierarchy import sort_roles_by_position
from .snapshots import RoleLike, unique_roles


class ConflictType(str, enum.Enum):
    ESCALATION = "escalation"
    DANGEROUS = "dangerous"


@dataclass(frozen=True)
class PermissionConflict:
    permission: str
    type: ConflictType
    roles: tuple[RoleLike, ...]
    message: str

    @property
    def role_names(self) -> tuple[str, ...]:
        return tuple(role.name for role in self.roles)


def _names(roles: Sequence[RoleLike]) -> str:
    return ", ".join(f"'{role.name}'" for role in roles)


class ConflictDetector:
    """Reports risky role combinations; never raises and never blocks.

    Records come out in a fixed order: per-role escalations (by authority),
    then the combinatorial escalation, then one dangerous record per
    dangerous permission in catalog order.
    """

    def __init__(self, *, catalog: PermissionCatalog) -> None:
        self._catalog = catalog

    def detect_permission_conflicts(self, assigned_roles: Iterable[RoleLike]) -> list[PermissionConflict]:
        roles = sort_roles_by_position(unique_roles(assigned_roles))
        if not roles:
            return []

        conflicts: list[PermissionConflict] = []
        conflicts.extend(self._role_escalations(roles))

        union: set[str] = set()
        for role in roles:
            union.update(role.permission_keys)

        combined = self._combined_escalation(roles, union)
        if combined is not None:
            conflicts.append(combined)

        conflicts.extend(self._dangerous_exposure(roles, union))
        return conflicts

    def _role_escalations(self, roles: Sequence[RoleLike]) -> list[PermissionConflict]:
        conflicts: list[PermissionConflict] = []
        for role in roles:
            power = role.permission_keys & ROLE_MANAGEMENT_PERMISSIONS
            if not power:
                continue
            outranking = [
                other
                for other in roles
                if other.id != role.id
                and other.position > role.position
                and not (other.permission_keys & ROLE_MANAGEMENT_PERMISSIONS)
            ]
            if not outranking:
                continue
            permission = ADMINISTRATOR if ADMINISTRATOR in power else MANAGE_ROLES
            conflicts.append(
                PermissionConflict(
                    permission=permission,
                    type=ConflictType.ESCALATION,
                    roles=(role,),
                    message=(
                        f"Role '{role.name}' (position {role.position}) grants {permission} "
                        f"while ranking below {_names(outranking)}, which cannot manage roles; "
                        "holders can manage roles above this role's own rank"
                    ),
                )
            )
        return conflicts

    def _combined_escalation(
        self,
        roles: Sequence[RoleLike],
        union: set[str],
    ) -> PermissionConflict | None:
        if ADMINISTRATOR in union:
            return None
        required = self._catalog.keys() - {ADMINISTRATOR}
        if not required <= union:
            return None
        return PermissionConflict(
            permission=ADMINISTRATOR,
            type=ConflictType.ESCALATION,
            roles=tuple(roles),
            message=(
                f"Roles {_names(roles)} together grant every permission in the catalog, "
                "equivalent to administrator, although none carries it"
            ),
        )

    def _dangerous_exposure(
        self,
        roles: Sequence[RoleLike],
        union: set[str],
    ) -> list[PermissionConflict]:
        conflicts: list[PermissionConflict] = []
        for definition in self._catalog:
            if not definition.is_dangerous or definition.key not in union:
                continue
            contributors = tuple(role for role in roles if definition.key in role.permission_keys)
            conflicts.append(
                PermissionConflict(
                    permission=definition.key,
                    type=ConflictType.DANGEROUS,
                    roles=contributors,
                    message=f"Dangerous permission '{definition.label}' granted by {_names(contributors)}",
                )
            )
        return conflicts


__all__ = ["ConflictDetector", "ConflictType", "PermissionConflict"]
