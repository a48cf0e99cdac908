"""Append-only trail of role and assignment changes."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, Index, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from teamchat_rbac.core.rbac.types import AuditAction, AuditTargetType
from teamchat_rbac.db import Base, UUIDPrimaryKeyMixin
from teamchat_rbac.db.base import utc_now
from teamchat_rbac.db.types import UTCDateTime, UUIDType


def _enum_values(enum_cls: type[AuditAction] | type[AuditTargetType]) -> list[str]:
    return [member.value for member in enum_cls]


class RoleAuditEntry(UUIDPrimaryKeyMixin, Base):
    """One role mutation or assignment change.

    ``role_id`` and ``actor_role_id`` are plain columns so entries outlive the
    roles they mention.
    """

    __tablename__ = "role_audit_entries"

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    actor_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    actor_role_id: Mapped[UUID | None] = mapped_column(UUIDType(), nullable=True)
    action: Mapped[AuditAction] = mapped_column(
        SAEnum(
            AuditAction,
            name="audit_action",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    target_type: Mapped[AuditTargetType] = mapped_column(
        SAEnum(
            AuditTargetType,
            name="audit_target_type",
            native_enum=False,
            length=20,
            values_callable=_enum_values,
        ),
        nullable=False,
    )
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    role_id: Mapped[UUID | None] = mapped_column(UUIDType(), nullable=True)
    old_value: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)
    new_value: Mapped[dict[str, object] | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("role_audit_entries_target_idx", "target_type", "target_id"),
        Index("role_audit_entries_actor_idx", "actor_id"),
        Index("role_audit_entries_occurred_idx", "occurred_at"),
    )


__all__ = ["RoleAuditEntry"]
