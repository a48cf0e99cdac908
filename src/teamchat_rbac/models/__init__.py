"""Central exports for the engine's SQLAlchemy models."""

from .audit import RoleAuditEntry
from .rbac import DEFAULT_ROLE_COLOR, Permission, Role, RolePermission, UserRoleAssignment

__all__ = [
    "DEFAULT_ROLE_COLOR",
    "Permission",
    "Role",
    "RoleAuditEntry",
    "RolePermission",
    "UserRoleAssignment",
]
