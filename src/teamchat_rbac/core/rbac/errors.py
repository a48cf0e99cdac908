"""Error taxonomy for role and assignment operations."""

from __future__ import annotations

from collections.abc import Sequence


class RbacError(ValueError):
    """Base class for authorization engine errors."""


class RoleValidationError(RbacError):
    """Raised when a role payload violates field invariants.

    ``errors`` lists every violated field (``"<field>: <message>"``), not just
    the first; ``warnings`` carries the non-blocking advisories produced by the
    same validation pass so callers can surface both verbatim.
    """

    def __init__(self, errors: Sequence[str], warnings: Sequence[str] = ()) -> None:
        self.errors = tuple(errors)
        self.warnings = tuple(warnings)
        super().__init__("; ".join(self.errors) or "Role payload is invalid")


class RoleConflictError(RbacError):
    """Raised on a stale version or a duplicate role name."""


class NotFoundError(RbacError):
    """Raised when a role or permission id cannot be located."""


class RoleNotFoundError(NotFoundError):
    """Raised when a role cannot be located."""


class PermissionNotFoundError(NotFoundError):
    """Raised when a permission key is not registered in the catalog."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Permission '{key}' is not registered")


class RoleForbiddenError(RbacError):
    """Raised on a hierarchy violation or a protected built-in field mutation."""


class InvariantViolationError(RbacError):
    """Raised when an action would leave a user without any role."""


__all__ = [
    "InvariantViolationError",
    "NotFoundError",
    "PermissionNotFoundError",
    "RbacError",
    "RoleConflictError",
    "RoleForbiddenError",
    "RoleNotFoundError",
    "RoleValidationError",
]
