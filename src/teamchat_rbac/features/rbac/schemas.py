"""Pydantic payloads accepted and returned by the role store."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from teamchat_rbac.core.rbac.types import AuditAction, AuditTargetType, PermissionCategory


class BaseSchema(BaseModel):
    """Base class for engine payloads."""

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True,
        extra="ignore",
    )

    def serializable_dict(self, *, exclude_none: bool = True, **kwargs: Any) -> dict[str, Any]:
        """Return a JSON-friendly dict representation."""

        return self.model_dump(mode="json", exclude_none=exclude_none, **kwargs)


class RoleCreate(BaseSchema):
    """Payload for creating a custom role.

    Field limits are enforced by the role validator, not here, so that a
    single failed create reports every offending field at once.
    """

    name: str = ""
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    position: int | None = None
    permissions: list[str] = Field(default_factory=list)
    is_default: bool = False
    is_mentionable: bool = False


class RoleUpdate(BaseSchema):
    """Partial update; only fields explicitly set are applied."""

    name: str | None = None
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    position: int | None = None
    permissions: list[str] | None = None
    is_default: bool | None = None
    is_mentionable: bool | None = None
    is_built_in: bool | None = None


class RoleOut(BaseSchema):
    id: UUID
    slug: str
    name: str
    description: str | None = None
    color: str
    icon: str | None = None
    position: int
    is_default: bool
    is_mentionable: bool
    is_built_in: bool
    permissions: list[str] = Field(default_factory=list, validation_alias="permission_keys")
    version: int
    created_at: datetime
    updated_at: datetime

    @field_validator("permissions", mode="before")
    @classmethod
    def _sort_permissions(cls, value: Any) -> Any:
        if isinstance(value, (set, frozenset, tuple, list)):
            return sorted(value)
        return value


class PermissionOut(BaseSchema):
    key: str
    category: PermissionCategory
    label: str
    description: str
    is_dangerous: bool
    requires_admin: bool



class AuditEntryOut(BaseSchema):
    id: UUID
    occurred_at: datetime
    action: AuditAction
    target_type: AuditTargetType
    target_id: str
    actor_id: str | None = None
    actor_role_id: UUID | None = None
    role_id: UUID | None = None
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None


__all__ = ["AuditEntryOut", "BaseSchema", "PermissionOut", "RoleCreate", "RoleOut", "RoleUpdate"]
