"""Role hierarchy, effective permissions, conflict detection, and assignments."""

from .assignments import (
    AssignmentAction,
    AssignmentChange,
    AssignmentCoordinator,
    AssignmentFailure,
    AssignmentLocks,
    AssignmentPreview,
    AssignmentResult,
)
from .audit import AuditTrail, role_state
from .cache import CacheStats, EffectivePermissionsCache, cache_key
from .catalog import PermissionCatalog
from .conflicts import ConflictDetector, ConflictType, PermissionConflict
from .engine import RbacEngine
from .hierarchy import (
    HierarchyResolver,
    PermissionDiff,
    RoleComparison,
    highest_role,
    sort_roles_by_position,
)
from .resolver import AuthorizationDecision, EffectivePermissions, PermissionResolver
from .schemas import AuditEntryOut, PermissionOut, RoleCreate, RoleOut, RoleUpdate
from .snapshots import RoleLike, RoleSnapshot
from .store import RoleStore
from .validator import RoleDraft, RoleValidationReport, validate_role

__all__ = [
    "AssignmentAction",
    "AssignmentChange",
    "AssignmentCoordinator",
    "AssignmentFailure",
    "AssignmentLocks",
    "AssignmentPreview",
    "AssignmentResult",
    "AuditEntryOut",
    "AuditTrail",
    "AuthorizationDecision",
    "CacheStats",
    "ConflictDetector",
    "ConflictType",
    "EffectivePermissions",
    "EffectivePermissionsCache",
    "HierarchyResolver",
    "PermissionCatalog",
    "PermissionConflict",
    "PermissionDiff",
    "PermissionOut",
    "PermissionResolver",
    "RbacEngine",
    "RoleComparison",
    "RoleCreate",
    "RoleDraft",
    "RoleLike",
    "RoleOut",
    "RoleSnapshot",
    "RoleStore",
    "RoleUpdate",
    "RoleValidationReport",
    "cache_key",
    "highest_role",
    "role_state",
    "sort_roles_by_position",
    "validate_role",
]
