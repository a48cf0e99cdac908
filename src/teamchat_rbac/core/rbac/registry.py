"""Canonical permission and built-in role registry.

The catalog is closed: every permission a role may carry is listed here and
nowhere else. Keep keys stable; they are persisted in ``role_permissions``.
"""

from __future__ import annotations

from teamchat_rbac.core.rbac.types import PermissionCategory, PermissionDef, SystemRoleDef

ADMINISTRATOR = "administrator"
MANAGE_ROLES = "manage_roles"

# Permissions that confer authority over the role hierarchy itself.
ROLE_MANAGEMENT_PERMISSIONS: frozenset[str] = frozenset({ADMINISTRATOR, MANAGE_ROLES})


def _permission(
    *,
    key: str,
    category: PermissionCategory,
    label: str,
    description: str,
    dangerous: bool = False,
    requires_admin: bool | None = None,
) -> PermissionDef:
    if requires_admin is None:
        requires_admin = category is PermissionCategory.ADMIN
    return PermissionDef(
        key=key,
        category=category,
        label=label,
        description=description,
        is_dangerous=dangerous,
        requires_admin=requires_admin,
    )


PERMISSIONS: tuple[PermissionDef, ...] = (
    # General ------------------------------------------------------------
    _permission(
        key="view_channels",
        category=PermissionCategory.GENERAL,
        label="View channels",
        description="See public channels and read their history.",
    ),
    # Messages -----------------------------------------------------------
    _permission(
        key="send_messages",
        category=PermissionCategory.MESSAGES,
        label="Send messages",
        description="Post messages and replies in channels the member can see.",
    ),
    _permission(
        key="edit_messages",
        category=PermissionCategory.MESSAGES,
        label="Edit own messages",
        description="Edit messages the member authored.",
    ),
    _permission(
        key="delete_messages",
        category=PermissionCategory.MESSAGES,
        label="Delete own messages",
        description="Delete messages the member authored.",
    ),
    _permission(
        key="delete_others_messages",
        category=PermissionCategory.MESSAGES,
        label="Delete any message",
        description="Remove messages posted by other members.",
    ),
    _permission(
        key="pin_messages",
        category=PermissionCategory.MESSAGES,
        label="Pin messages",
        description="Pin and unpin messages in a channel.",
    ),
    _permission(
        key="mention_everyone",
        category=PermissionCategory.MESSAGES,
        label="Mention everyone",
        description="Use @everyone and @here to notify a whole channel.",
    ),
    # Channels -----------------------------------------------------------
    _permission(
        key="create_channels",
        category=PermissionCategory.CHANNELS,
        label="Create channels",
        description="Create public and private channels.",
    ),
    _permission(
        key="edit_channels",
        category=PermissionCategory.CHANNELS,
        label="Edit channels",
        description="Rename channels and change their topic or settings.",
    ),
    _permission(
        key="delete_channels",
        category=PermissionCategory.CHANNELS,
        label="Delete channels",
        description="Permanently delete channels and their history.",
        dangerous=True,
    ),
    _permission(
        key="manage_channels",
        category=PermissionCategory.CHANNELS,
        label="Manage channels",
        description="Archive channels and manage channel membership.",
    ),
    # Members ------------------------------------------------------------
    _permission(
        key="view_members",
        category=PermissionCategory.MEMBERS,
        label="View members",
        description="Browse the member directory and profiles.",
    ),
    _permission(
        key="edit_members",
        category=PermissionCategory.MEMBERS,
        label="Edit members",
        description="Change other members' nicknames and profile fields.",
    ),
    _permission(
        key="mute_members",
        category=PermissionCategory.MEMBERS,
        label="Mute members",
        description="Temporarily prevent a member from posting.",
    ),
    _permission(
        key="kick_members",
        category=PermissionCategory.MEMBERS,
        label="Kick members",
        description="Remove a member from the workspace; they may rejoin.",
    ),
    _permission(
        key="ban_members",
        category=PermissionCategory.MEMBERS,
        label="Ban members",
        description="Remove a member and prevent them from rejoining.",
        dangerous=True,
    ),
    # Roles --------------------------------------------------------------
    _permission(
        key="view_roles",
        category=PermissionCategory.ROLES,
        label="View roles",
        description="See role definitions and who holds them.",
    ),
    _permission(
        key="create_roles",
        category=PermissionCategory.ROLES,
        label="Create roles",
        description="Create new custom roles.",
        dangerous=True,
    ),
    _permission(
        key="edit_roles",
        category=PermissionCategory.ROLES,
        label="Edit roles",
        description="Change custom role names, colors, and permission sets.",
    ),
    _permission(
        key="delete_roles",
        category=PermissionCategory.ROLES,
        label="Delete roles",
        description="Delete custom roles and their assignments.",
        dangerous=True,
    ),
    _permission(
        key="assign_roles",
        category=PermissionCategory.ROLES,
        label="Assign roles",
        description="Grant and revoke roles below the member's own rank.",
    ),
    _permission(
        key=MANAGE_ROLES,
        category=PermissionCategory.ROLES,
        label="Manage roles",
        description="Full control over roles ranked below the holder's highest role.",
        dangerous=True,
        requires_admin=True,
    ),
    # Administration -----------------------------------------------------
    _permission(
        key="view_dashboard",
        category=PermissionCategory.ADMIN,
        label="View admin dashboard",
        description="Open the administration dashboard.",
    ),
    _permission(
        key="view_audit_log",
        category=PermissionCategory.ADMIN,
        label="View audit log",
        description="Inspect the workspace audit trail.",
    ),
    _permission(
        key="manage_settings",
        category=PermissionCategory.ADMIN,
        label="Manage settings",
        description="Change workspace-wide settings and integrations.",
        dangerous=True,
    ),
    _permission(
        key="manage_billing",
        category=PermissionCategory.ADMIN,
        label="Manage billing",
        description="Change plans, payment methods, and invoices.",
        dangerous=True,
    ),
    _permission(
        key=ADMINISTRATOR,
        category=PermissionCategory.ADMIN,
        label="Administrator",
        description="Grants every permission in the catalog, present and future.",
        dangerous=True,
    ),
)

_MEMBER_PERMISSIONS: tuple[str, ...] = (
    "view_channels",
    "send_messages",
    "edit_messages",
    "delete_messages",
    "view_members",
    "view_roles",
)

_MODERATOR_PERMISSIONS: tuple[str, ...] = (
    *_MEMBER_PERMISSIONS,
    "delete_others_messages",
    "pin_messages",
    "manage_channels",
    "mute_members",
    "kick_members",
    "view_dashboard",
)

_ADMIN_PERMISSIONS: tuple[str, ...] = (
    *_MODERATOR_PERMISSIONS,
    "mention_everyone",
    "create_channels",
    "edit_channels",
    "delete_channels",
    "edit_members",
    "ban_members",
    "assign_roles",
    MANAGE_ROLES,
    "manage_settings",
    "view_audit_log",
)

SYSTEM_ROLES: tuple[SystemRoleDef, ...] = (
    SystemRoleDef(
        slug="owner",
        name="Owner",
        description="Workspace owner; holds every permission and outranks all other roles.",
        color="#FF0000",
        position=100,
        permissions=tuple(defn.key for defn in PERMISSIONS),
    ),
    SystemRoleDef(
        slug="admin",
        name="Admin",
        description="Workspace administrator without billing or unrestricted authority.",
        color="#FF7B00",
        position=90,
        permissions=_ADMIN_PERMISSIONS,
        is_mentionable=True,
    ),
    SystemRoleDef(
        slug="moderator",
        name="Moderator",
        description="Keeps conversations healthy: message clean-up, mutes, and kicks.",
        color="#00B050",
        position=70,
        permissions=_MODERATOR_PERMISSIONS,
        is_mentionable=True,
    ),
    SystemRoleDef(
        slug="member",
        name="Member",
        description="Baseline role granted to every new member.",
        color="#808080",
        position=20,
        permissions=_MEMBER_PERMISSIONS,
        is_default=True,
    ),
    SystemRoleDef(
        slug="guest",
        name="Guest",
        description="Read-mostly access for single-channel or external guests.",
        color="#C0C0C0",
        position=10,
        permissions=("view_channels", "view_members"),
    ),
)

__all__ = [
    "ADMINISTRATOR",
    "MANAGE_ROLES",
    "PERMISSIONS",
    "PermissionCategory",
    "PermissionDef",
    "ROLE_MANAGEMENT_PERMISSIONS",
    "SYSTEM_ROLES",
    "SystemRoleDef",
]
