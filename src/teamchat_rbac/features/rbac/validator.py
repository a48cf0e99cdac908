"""Field-level validation for role drafts.

Validation never raises; it returns every error and warning it finds so an
admin surface can display them verbatim. Errors are prefixed with the field
they concern (``"name: is required"``).
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from teamchat_rbac.core.rbac.errors import RoleValidationError

from .catalog import PermissionCatalog
from .snapshots import RoleLike

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
MIN_POSITION = 1

_HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

# Fields a built-in role keeps for its whole lifetime.
PROTECTED_FIELDS: tuple[str, ...] = ("name", "position", "is_built_in")


@dataclass(frozen=True)
class RoleDraft:
    """The role fields subject to validation, as they would be persisted."""

    name: str | None
    description: str | None = None
    color: str | None = None
    position: object = None
    permissions: tuple[str, ...] = ()
    is_mentionable: bool = False
    is_built_in: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "permissions", tuple(self.permissions))


@dataclass(frozen=True)
class RoleValidationReport:
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise RoleValidationError(self.errors, self.warnings)


def validate_role(
    draft: RoleDraft,
    *,
    catalog: PermissionCatalog,
    existing: RoleLike | None = None,
) -> RoleValidationReport:
    """Check ``draft`` against the role field invariants.

    ``existing`` is the persisted role an update would modify; when it is a
    built-in role, any change to a protected field is reported as an error.
    """

    errors: list[str] = []
    warnings: list[str] = []

    name = (draft.name or "").strip()
    if not name:
        errors.append("name: is required")
    elif len(name) > NAME_MAX_LENGTH:
        errors.append(f"name: must be at most {NAME_MAX_LENGTH} characters (got {len(name)})")

    if draft.description is not None and len(draft.description) > DESCRIPTION_MAX_LENGTH:
        errors.append(
            f"description: must be at most {DESCRIPTION_MAX_LENGTH} characters "
            f"(got {len(draft.description)})"
        )

    if draft.position is not None:
        if isinstance(draft.position, bool) or not isinstance(draft.position, int):
            errors.append("position: must be an integer")
        elif draft.position < MIN_POSITION:
            errors.append(f"position: must be at least {MIN_POSITION} (got {draft.position})")

    for key in catalog.unknown_keys(draft.permissions):
        errors.append(f"permissions: unknown permission '{key}'")

    if draft.color is not None and not _HEX_COLOR.match(draft.color):
        errors.append(f"color: '{draft.color}' is not a hex color (#RGB or #RRGGBB)")

    if existing is not None and existing.is_built_in:
        for field_name in changed_protected_fields(existing, draft):
            errors.append(f"{field_name}: cannot be changed on built-in role '{existing.name}'")
    elif existing is not None and draft.is_built_in and not existing.is_built_in:
        errors.append("is_built_in: custom roles cannot be marked built-in")

    if not draft.permissions:
        warnings.append("permissions: role grants no permissions")

    dangerous = _dangerous_keys(catalog, draft.permissions)
    if dangerous and draft.is_mentionable:
        warnings.append(
            "is_mentionable: role grants dangerous permissions "
            f"({', '.join(dangerous)}) and can be mentioned by everyone"
        )

    return RoleValidationReport(errors=tuple(errors), warnings=tuple(warnings))


def changed_protected_fields(existing: RoleLike, draft: RoleDraft) -> tuple[str, ...]:
    changed: list[str] = []
    if draft.name is not None and draft.name.strip() != existing.name:
        changed.append("name")
    if draft.position is not None and draft.position != existing.position:
        changed.append("position")
    if draft.is_built_in != existing.is_built_in:
        changed.append("is_built_in")
    return tuple(changed)


def _dangerous_keys(catalog: PermissionCatalog, keys: Iterable[str]) -> tuple[str, ...]:
    known = [key for key in keys if key in catalog]
    return tuple(key for key in catalog.sort_keys(known) if catalog.is_dangerous(key))


__all__ = [
    "DESCRIPTION_MAX_LENGTH",
    "NAME_MAX_LENGTH",
    "PROTECTED_FIELDS",
    "RoleDraft",
    "RoleValidationReport",
    "changed_protected_fields",
    "validate_role",
]
