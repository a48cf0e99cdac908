"""Static RBAC definitions: catalog, built-in roles, and error types."""

from .errors import (
    InvariantViolationError,
    NotFoundError,
    PermissionNotFoundError,
    RbacError,
    RoleConflictError,
    RoleForbiddenError,
    RoleNotFoundError,
    RoleValidationError,
)
from .registry import (
    ADMINISTRATOR,
    MANAGE_ROLES,
    PERMISSIONS,
    ROLE_MANAGEMENT_PERMISSIONS,
    SYSTEM_ROLES,
)
from .types import AuditAction, AuditTargetType, PermissionCategory, PermissionDef, SystemRoleDef

__all__ = [
    "ADMINISTRATOR",
    "AuditAction",
    "AuditTargetType",
    "InvariantViolationError",
    "MANAGE_ROLES",
    "NotFoundError",
    "PERMISSIONS",
    "PermissionCategory",
    "PermissionDef",
    "PermissionNotFoundError",
    "ROLE_MANAGEMENT_PERMISSIONS",
    "RbacError",
    "RoleConflictError",
    "RoleForbiddenError",
    "RoleNotFoundError",
    "RoleValidationError",
    "SYSTEM_ROLES",
    "SystemRoleDef",
]
