"""Authority ordering and role-management checks."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TypeVar

from teamchat_rbac.core.rbac.registry import ADMINISTRATOR

from .catalog import PermissionCatalog
from .snapshots import RoleLike

R = TypeVar("R", bound=RoleLike)


def sort_roles_by_position(roles: Iterable[R]) -> list[R]:
    """Return roles by descending position; equal positions keep creation order."""

    return sorted(roles, key=lambda role: (-role.position, role.created_at))


def highest_role(roles: Iterable[R]) -> R | None:
    ordered = sort_roles_by_position(roles)
    return ordered[0] if ordered else None


@dataclass(frozen=True)
class RoleComparison:
    shared: tuple[str, ...]
    only_in_a: tuple[str, ...]
    only_in_b: tuple[str, ...]
    position_difference: int
    a_can_manage_b: bool
    b_can_manage_a: bool


@dataclass(frozen=True)
class PermissionDiff:
    added: tuple[str, ...]
    removed: tuple[str, ...]
    unchanged: tuple[str, ...]


class HierarchyResolver:
    """Decides which roles an actor may manage.

    The rule, in order:

    1. The top-authority built-in role can only be managed by a holder of
       that same role.
    2. A role carrying ``administrator`` may manage every other role.
    3. Otherwise the actor's highest role must sit strictly above the target.
    """

    def __init__(self, *, catalog: PermissionCatalog, top_authority_slug: str = "owner") -> None:
        self._catalog = catalog
        self._top_authority_slug = top_authority_slug

    @property
    def top_authority_slug(self) -> str:
        return self._top_authority_slug

    def is_top_authority(self, role: RoleLike) -> bool:
        return role.is_built_in and role.slug == self._top_authority_slug

    def can_manage_role(self, actor_highest_role: RoleLike | None, target_role: RoleLike) -> bool:
        return self.explain(actor_highest_role, target_role) is None

    def explain(self, actor_highest_role: RoleLike | None, target_role: RoleLike) -> str | None:
        """Return why ``actor_highest_role`` may not manage ``target_role``, or ``None``."""

        actor = actor_highest_role
        if actor is None:
            return f"Actor holds no role and cannot manage role '{target_role.name}'"

        if self.is_top_authority(target_role):
            if self.is_top_authority(actor):
                return None
            return (
                f"Role '{target_role.name}' can only be managed by its own holders; "
                f"'{actor.name}' (position {actor.position}) is not '{target_role.name}'"
            )

        if actor.id == target_role.id:
            return f"Role '{actor.name}' cannot manage itself"

        if ADMINISTRATOR in actor.permission_keys:
            return None

        if actor.position > target_role.position:
            return None

        gap = target_role.position - actor.position
        return (
            f"Role '{actor.name}' (position {actor.position}) cannot manage role "
            f"'{target_role.name}' (position {target_role.position}); "
            f"it needs a position above {target_role.position} ({gap + 1} higher)"
        )

    def get_manageable_roles(
        self,
        actor_highest_role: RoleLike | None,
        all_roles: Iterable[R],
    ) -> list[R]:
        return [
            role
            for role in sort_roles_by_position(all_roles)
            if self.can_manage_role(actor_highest_role, role)
        ]

    def compare_roles(self, a: RoleLike, b: RoleLike) -> RoleComparison:
        a_keys = a.permission_keys
        b_keys = b.permission_keys
        return RoleComparison(
            shared=self._catalog.sort_keys(a_keys & b_keys),
            only_in_a=self._catalog.sort_keys(a_keys - b_keys),
            only_in_b=self._catalog.sort_keys(b_keys - a_keys),
            position_difference=a.position - b.position,
            a_can_manage_b=self.can_manage_role(a, b),
            b_can_manage_a=self.can_manage_role(b, a),
        )

    def permission_diff(self, from_role: RoleLike, to_role: RoleLike) -> PermissionDiff:
        before = from_role.permission_keys
        after = to_role.permission_keys
        return PermissionDiff(
            added=self._catalog.sort_keys(after - before),
            removed=self._catalog.sort_keys(before - after),
            unchanged=self._catalog.sort_keys(before & after),
        )


__all__ = [
    "HierarchyResolver",
    "PermissionDiff",
    "RoleComparison",
    "highest_role",
    "sort_roles_by_position",
]
