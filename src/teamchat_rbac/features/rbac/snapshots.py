"""Detached role views shared by the pure resolution functions."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

from teamchat_rbac.common.ids import generate_uuid7
from teamchat_rbac.db.base import utc_now


@runtime_checkable
class RoleLike(Protocol):
    """Attributes the hierarchy, resolver, and conflict functions read from a role.

    Both persisted :class:`~teamchat_rbac.models.Role` rows and
    :class:`RoleSnapshot` values satisfy it.
    """

    id: UUID
    slug: str
    name: str
    position: int
    created_at: datetime
    version: int
    is_built_in: bool

    @property
    def permission_keys(self) -> frozenset[str]: ...


@dataclass(frozen=True)
class RoleSnapshot:
    """Immutable copy of a role, safe to cache across sessions."""

    name: str
    position: int
    permission_keys: frozenset[str] = frozenset()
    slug: str = ""
    id: UUID = field(default_factory=generate_uuid7)
    created_at: datetime = field(default_factory=utc_now)
    version: int = 1
    is_built_in: bool = False
    is_default: bool = False
    is_mentionable: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "permission_keys", frozenset(self.permission_keys))
        if not self.slug:
            object.__setattr__(self, "slug", self.name.strip().lower().replace(" ", "-"))

    @classmethod
    def from_role(cls, role: RoleLike) -> RoleSnapshot:
        if isinstance(role, RoleSnapshot):
            return role
        return cls(
            id=role.id,
            slug=role.slug,
            name=role.name,
            position=role.position,
            permission_keys=role.permission_keys,
            created_at=role.created_at,
            version=role.version,
            is_built_in=role.is_built_in,
            is_default=getattr(role, "is_default", False),
            is_mentionable=getattr(role, "is_mentionable", False),
        )


def unique_roles(roles: Iterable[RoleLike]) -> list[RoleLike]:
    """Drop repeated role ids, keeping the first occurrence."""

    seen: set[UUID] = set()
    result: list[RoleLike] = []
    for role in roles:
        if role.id in seen:
            continue
        seen.add(role.id)
        result.append(role)
    return result


__all__ = ["RoleLike", "RoleSnapshot", "unique_roles"]
