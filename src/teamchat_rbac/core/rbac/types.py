"""RBAC type definitions used across the stack."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class PermissionCategory(str, enum.Enum):
    """Display grouping for catalog permissions."""

    GENERAL = "general"
    MESSAGES = "messages"
    CHANNELS = "channels"
    MEMBERS = "members"
    ROLES = "roles"
    ADMIN = "admin"


@dataclass(frozen=True)
class PermissionDef:
    """Static permission definition."""

    key: str
    category: PermissionCategory
    label: str
    description: str
    is_dangerous: bool = False
    requires_admin: bool = False


@dataclass(frozen=True)
class SystemRoleDef:
    """Static built-in role definition seeded at startup."""

    slug: str
    name: str
    description: str
    color: str
    position: int
    permissions: tuple[str, ...]
    is_default: bool = False
    is_mentionable: bool = False


class AuditAction(str, enum.Enum):
    """What an audit entry records."""

    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    GRANT = "grant"
    REVOKE = "revoke"


class AuditTargetType(str, enum.Enum):
    ROLE = "role"
    USER = "user"
