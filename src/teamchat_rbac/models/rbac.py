"""Role, permission, and assignment models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    false,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teamchat_rbac.core.rbac.types import PermissionCategory
from teamchat_rbac.db import Base, TimestampMixin, UUIDPrimaryKeyMixin
from teamchat_rbac.db.base import utc_now
from teamchat_rbac.db.types import UTCDateTime, UUIDType

DEFAULT_ROLE_COLOR = "#99AAB5"


def _enum_values(enum_cls: type[PermissionCategory]) -> list[str]:
    return [member.value for member in enum_cls]


permission_category_enum = SAEnum(
    PermissionCategory,
    name="permission_category",
    native_enum=False,
    length=20,
    values_callable=_enum_values,
)


class Permission(Base):
    """Persisted mirror of a catalog entry; bridge rows reference its key."""

    __tablename__ = "permissions"

    key: Mapped[str] = mapped_column(String(120), primary_key=True)
    category: Mapped[PermissionCategory] = mapped_column(permission_category_enum, nullable=False)
    label: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    is_dangerous: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    requires_admin: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )


class Role(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Named, ordered bundle of permissions."""

    __tablename__ = "roles"

    slug: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default=DEFAULT_ROLE_COLOR)
    icon: Mapped[str | None] = mapped_column(String(100), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    is_default: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    is_mentionable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    is_built_in: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    updated_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    permissions: Mapped[list[RolePermission]] = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("position >= 0", name="position_non_negative"),
        Index("roles_position_idx", "position"),
    )

    @property
    def permission_keys(self) -> frozenset[str]:
        return frozenset(link.permission_key for link in self.permissions)

    def __repr__(self) -> str:
        return f"Role(slug={self.slug!r}, position={self.position}, version={self.version})"


class RolePermission(Base):
    """Bridge table linking roles to catalog permission keys."""

    __tablename__ = "role_permissions"

    role_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True
    )
    permission_key: Mapped[str] = mapped_column(
        String(120), ForeignKey("permissions.key", ondelete="RESTRICT"), primary_key=True
    )

    role: Mapped[Role] = relationship("Role", back_populates="permissions")


class UserRoleAssignment(UUIDPrimaryKeyMixin, Base):
    """Assignment of a role to an externally-identified user."""

    __tablename__ = "user_role_assignments"

    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    role_id: Mapped[UUID] = mapped_column(
        UUIDType(), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)

    role: Mapped[Role] = relationship("Role", lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="user_role_assignments_user_role_key"),
        Index("user_role_assignments_role_id_idx", "role_id"),
    )


__all__ = [
    "DEFAULT_ROLE_COLOR",
    "Permission",
    "Role",
    "RolePermission",
    "UserRoleAssignment",
]
