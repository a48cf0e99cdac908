"""Recording and querying the role audit trail."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat_rbac.core.rbac.types import AuditAction, AuditTargetType
from teamchat_rbac.models import Role, RoleAuditEntry


def role_state(role: Role) -> dict[str, Any]:
    """JSON-ready view of the audited role fields."""

    return {
        "slug": role.slug,
        "name": role.name,
        "description": role.description,
        "color": role.color,
        "icon": role.icon,
        "position": role.position,
        "is_default": role.is_default,
        "is_mentionable": role.is_mentionable,
        "permissions": sorted(role.permission_keys),
        "version": role.version,
    }


class AuditTrail:
    """Writes entries into the caller's transaction; reads newest first."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    def record(
        self,
        *,
        action: AuditAction,
        target_type: AuditTargetType,
        target_id: str | UUID,
        actor_id: str | None = None,
        actor_role_id: UUID | None = None,
        role_id: UUID | None = None,
        old_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
    ) -> RoleAuditEntry:
        entry = RoleAuditEntry(
            action=action,
            target_type=target_type,
            target_id=str(target_id),
            actor_id=actor_id,
            actor_role_id=actor_role_id,
            role_id=role_id,
            old_value=old_value,
            new_value=new_value,
        )
        self._session.add(entry)
        return entry

    async def list_audit_entries(
        self,
        *,
        actor_id: str | None = None,
        actor_role_id: UUID | None = None,
        target_type: AuditTargetType | None = None,
        target_id: str | UUID | None = None,
        role_id: UUID | None = None,
        action: AuditAction | None = None,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[RoleAuditEntry]:
        stmt = select(RoleAuditEntry)
        if actor_id is not None:
            stmt = stmt.where(RoleAuditEntry.actor_id == actor_id)
        if actor_role_id is not None:
            stmt = stmt.where(RoleAuditEntry.actor_role_id == actor_role_id)
        if target_type is not None:
            stmt = stmt.where(RoleAuditEntry.target_type == target_type)
        if target_id is not None:
            stmt = stmt.where(RoleAuditEntry.target_id == str(target_id))
        if role_id is not None:
            stmt = stmt.where(RoleAuditEntry.role_id == role_id)
        if action is not None:
            stmt = stmt.where(RoleAuditEntry.action == action)
        if since is not None:
            stmt = stmt.where(RoleAuditEntry.occurred_at >= since)
        stmt = stmt.order_by(RoleAuditEntry.occurred_at.desc(), RoleAuditEntry.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self._session.execute(stmt)
        return list(result.scalars().all())


__all__ = ["AuditTrail", "role_state"]
