"""Planning, previewing, and applying role-assignment changes for a user."""

from __future__ import annotations

import asyncio
import enum
import logging
import weakref
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import event, func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

from teamchat_rbac.common.logging import log_context
from teamchat_rbac.core.rbac.errors import (
    InvariantViolationError,
    NotFoundError,
    RoleForbiddenError,
    RoleNotFoundError,
)
from teamchat_rbac.core.rbac.types import AuditAction, AuditTargetType
from teamchat_rbac.models import Role, RoleAuditEntry, UserRoleAssignment

from .audit import AuditTrail
from .catalog import PermissionCatalog
from .conflicts import ConflictDetector, PermissionConflict
from .hierarchy import HierarchyResolver, sort_roles_by_position
from .resolver import EffectivePermissions, PermissionResolver
from .snapshots import RoleLike
from .store import RoleStore

logger = logging.getLogger(__name__)


class AssignmentAction(str, enum.Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class AssignmentChange:
    role_id: UUID
    action: AssignmentAction

    @classmethod
    def add(cls, role_id: UUID) -> AssignmentChange:
        return cls(role_id=role_id, action=AssignmentAction.ADD)

    @classmethod
    def remove(cls, role_id: UUID) -> AssignmentChange:
        return cls(role_id=role_id, action=AssignmentAction.REMOVE)


@dataclass(frozen=True)
class AssignmentFailure:
    role_id: UUID
    action: AssignmentAction
    reason: str
    code: str


@dataclass(frozen=True)
class AssignmentResult:
    """Outcome of one ``apply`` batch.

    ``applied`` lists changes that wrote a row; ``unchanged`` lists changes
    that were already in effect. Both count towards ``applied_count``.
    """

    applied: tuple[AssignmentChange, ...] = ()
    unchanged: tuple[AssignmentChange, ...] = ()
    errors: tuple[AssignmentFailure, ...] = ()

    @property
    def applied_count(self) -> int:
        return len(self.applied) + len(self.unchanged)

    @property
    def succeeded(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class AssignmentPreview:
    user_id: str
    before: EffectivePermissions | None
    after: EffectivePermissions | None
    gained: tuple[str, ...]
    lost: tuple[str, ...]
    conflicts: tuple[PermissionConflict, ...]
    warnings: tuple[str, ...] = field(default_factory=tuple)

    @property
    def leaves_without_roles(self) -> bool:
        return self.after is None


_HELD_LOCKS_KEY = "rbac_held_assignment_locks"


class AssignmentLocks:
    """Per-user ``asyncio.Lock`` registry shared by every session in the process.

    :meth:`hold` keeps a user's lock until the session's outermost transaction
    ends, so a batch's invariant checks and its commit form one critical
    section. A session that already holds a user's lock re-enters it freely.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def for_user(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def hold(self, session: AsyncSession, user_id: str) -> None:
        sync_session = session.sync_session
        held: dict[str, asyncio.Lock] | None = sync_session.info.get(_HELD_LOCKS_KEY)
        if held is None:
            held = {}
            sync_session.info[_HELD_LOCKS_KEY] = held
            event.listen(sync_session, "after_transaction_end", _release_held_locks)
        if user_id in held:
            return
        lock = self.for_user(user_id)
        await lock.acquire()
        held[user_id] = lock

    @staticmethod
    def held_by(session: AsyncSession) -> frozenset[str]:
        return frozenset(session.sync_session.info.get(_HELD_LOCKS_KEY, ()))


def _release_held_locks(session: Session, transaction: SessionTransaction) -> None:
    if transaction.parent is not None:
        return
    held: dict[str, asyncio.Lock] = session.info.get(_HELD_LOCKS_KEY, {})
    while held:
        _, lock = held.popitem()
        lock.release()


_FAILURE_CODES: tuple[tuple[type[Exception], str], ...] = (
    (NotFoundError, "not_found"),
    (RoleForbiddenError, "forbidden"),
    (InvariantViolationError, "invariant_violation"),
)


def _failure_code(exc: Exception) -> str:
    for exc_type, code in _FAILURE_CODES:
        if isinstance(exc, exc_type):
            return code
    return "error"


class AssignmentCoordinator:
    """Owns the lifecycle of user/role assignments within one session."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        store: RoleStore,
        catalog: PermissionCatalog,
        hierarchy: HierarchyResolver,
        resolver: PermissionResolver,
        detector: ConflictDetector,
        locks: AssignmentLocks,
    ) -> None:
        self._session = session
        self._store = store
        self._catalog = catalog
        self._hierarchy = hierarchy
        self._resolver = resolver
        self._detector = detector
        self._locks = locks
        self._audit = AuditTrail(session)

    # ------------- reads -------------------------

    async def assigned_roles(self, user_id: str) -> list[Role]:
        """Return the user's roles, highest authority first."""

        result = await self._session.execute(
            select(Role)
            .join(UserRoleAssignment, UserRoleAssignment.role_id == Role.id)
            .where(UserRoleAssignment.user_id == user_id)
        )
        return sort_roles_by_position(result.scalars().all())

    async def assigned_role_ids(self, user_id: str) -> list[UUID]:
        return [role.id for role in await self.assigned_roles(user_id)]

    async def effective_permissions(self, user_id: str) -> EffectivePermissions:
        roles = await self.assigned_roles(user_id)
        return self._resolver.compute_effective_permissions(roles, user_id=user_id)

    # ------------- planning ----------------------

    @staticmethod
    def plan(
        current_role_ids: Iterable[UUID],
        desired_role_ids: Iterable[UUID],
    ) -> list[AssignmentChange]:
        """Diff two role id sets: additions in desired order, then removals in current order."""

        current = list(dict.fromkeys(current_role_ids))
        desired = list(dict.fromkeys(desired_role_ids))
        current_set = set(current)
        desired_set = set(desired)
        changes = [AssignmentChange.add(role_id) for role_id in desired if role_id not in current_set]
        changes.extend(
            AssignmentChange.remove(role_id) for role_id in current if role_id not in desired_set
        )
        return changes

    async def preview(
        self,
        user_id: str,
        changes: Sequence[AssignmentChange],
        *,
        actor_highest_role: RoleLike | None = None,
    ) -> AssignmentPreview:
        """Simulate ``changes`` without writing anything."""

        current = await self.assigned_roles(user_id)
        targets = {role.id: role for role in await self._store.get_roles(c.role_id for c in changes)}

        warnings: list[str] = []
        after: dict[UUID, RoleLike] = {role.id: role for role in current}
        for change in changes:
            role = targets.get(change.role_id)
            if role is None:
                warnings.append(f"Role {change.role_id} not found")
                continue
            if actor_highest_role is not None:
                reason = self._hierarchy.explain(actor_highest_role, role)
                if reason is not None:
                    warnings.append(reason)
                    continue
            if change.action is AssignmentAction.ADD:
                after[role.id] = role
            else:
                after.pop(role.id, None)

        before_effective = self._compute_or_none(current, user_id)
        after_effective = self._compute_or_none(after.values(), user_id)

        before_keys = before_effective.permissions if before_effective else frozenset()
        after_keys = after_effective.permissions if after_effective else frozenset()
        gained = self._catalog.sort_keys(after_keys - before_keys)
        lost = self._catalog.sort_keys(before_keys - after_keys)

        for key in gained:
            if key in self._catalog and self._catalog.is_dangerous(key):
                warnings.append(f"Grants dangerous permission '{self._catalog.get(key).label}'")
        if after_effective is None:
            warnings.append(f"User {user_id} would be left without any role")

        return AssignmentPreview(
            user_id=user_id,
            before=before_effective,
            after=after_effective,
            gained=gained,
            lost=lost,
            conflicts=tuple(self._detector.detect_permission_conflicts(after.values())),
            warnings=tuple(warnings),
        )

    # ------------- writes ------------------------

    async def apply(
        self,
        user_id: str,
        actor_highest_role: RoleLike | None,
        changes: Sequence[AssignmentChange],
        *,
        actor_id: str | None = None,
    ) -> AssignmentResult:
        """Apply ``changes`` one by one; a failed change never undoes earlier ones.

        Each change runs inside its own savepoint. Not-found, hierarchy,
        last-role, and database conflict failures are recorded on the result
        rather than raised. The user's assignment lock is held until the
        session's transaction ends, so another batch for the same user only
        starts counting roles after this one is committed or rolled back.
        """

        applied: list[AssignmentChange] = []
        unchanged: list[AssignmentChange] = []
        errors: list[AssignmentFailure] = []
        actor_role_id = getattr(actor_highest_role, "id", None)

        await self._locks.hold(self._session, user_id)
        await self._lock_user_rows(user_id)

        for change in changes:
            failure: AssignmentFailure | None = None
            try:
                async with self._session.begin_nested():
                    wrote = await self._apply_change(
                        user_id, actor_highest_role, change, actor_id=actor_id
                    )
            except (NotFoundError, RoleForbiddenError, InvariantViolationError) as exc:
                failure = AssignmentFailure(
                    role_id=change.role_id,
                    action=change.action,
                    reason=str(exc),
                    code=_failure_code(exc),
                )
            except IntegrityError:
                # A concurrent writer committed the same assignment first.
                if (
                    change.action is AssignmentAction.ADD
                    and await self._assignment(user_id, change.role_id) is not None
                ):
                    wrote = False
                else:
                    failure = AssignmentFailure(
                        role_id=change.role_id,
                        action=change.action,
                        reason=f"Role {change.role_id} conflicts with a concurrent assignment change",
                        code="conflict",
                    )
            except OperationalError as exc:
                failure = AssignmentFailure(
                    role_id=change.role_id,
                    action=change.action,
                    reason=f"Role {change.role_id} was not changed: {exc.orig}",
                    code="conflict",
                )

            if failure is not None:
                errors.append(failure)
                logger.info(
                    "rbac.assignment.apply.rejected",
                    extra=log_context(
                        action=change.action.value,
                        user_id=user_id,
                        role_id=change.role_id,
                        actor_role_id=actor_role_id,
                        code=failure.code,
                    ),
                )
                continue

            (applied if wrote else unchanged).append(change)
            logger.info(
                "rbac.assignment.apply.success",
                extra=log_context(
                    action=change.action.value,
                    user_id=user_id,
                    role_id=change.role_id,
                    actor_role_id=actor_role_id,
                    noop=not wrote,
                ),
            )

        return AssignmentResult(
            applied=tuple(applied),
            unchanged=tuple(unchanged),
            errors=tuple(errors),
        )

    async def ensure_default_roles(self, user_id: str) -> list[Role]:
        """Grant the default roles to a user who holds none; return the roles added."""

        await self._locks.hold(self._session, user_id)
        await self._lock_user_rows(user_id)
        if await self._count_assignments(user_id):
            return []
        defaults = await self._store.default_roles()
        if not defaults:
            raise InvariantViolationError("No default role is configured")

        for role in defaults:
            self._session.add(UserRoleAssignment(user_id=user_id, role_id=role.id))
            self._audit.record(
                action=AuditAction.GRANT,
                target_type=AuditTargetType.USER,
                target_id=user_id,
                role_id=role.id,
                new_value={"role": role.slug, "default": True},
            )
        await self._session.flush()

        logger.info(
            "rbac.assignment.defaults.success",
            extra=log_context(user_id=user_id, roles=[role.slug for role in defaults]),
        )
        return defaults

    async def list_audit_entries(self, user_id: str, **filters: Any) -> list[RoleAuditEntry]:
        """Audit entries whose target is ``user_id``, newest first."""

        return await self._audit.list_audit_entries(
            target_type=AuditTargetType.USER, target_id=user_id, **filters
        )

    # ------------- helpers -----------------------

    async def _apply_change(
        self,
        user_id: str,
        actor_highest_role: RoleLike | None,
        change: AssignmentChange,
        *,
        actor_id: str | None,
    ) -> bool:
        role = await self._store.get_role(change.role_id)
        if role is None:
            raise RoleNotFoundError(f"Role {change.role_id} not found")

        reason = self._hierarchy.explain(actor_highest_role, role)
        if reason is not None:
            raise RoleForbiddenError(reason)

        existing = await self._assignment(user_id, role.id)
        if change.action is AssignmentAction.ADD:
            if existing is not None:
                return False
            self._session.add(UserRoleAssignment(user_id=user_id, role_id=role.id))
            self._record(AuditAction.GRANT, user_id, role, actor_highest_role, actor_id)
            await self._session.flush()
            return True

        if existing is None:
            return False
        if await self._count_assignments(user_id) <= 1:
            raise InvariantViolationError(
                f"Removing role '{role.name}' would leave user {user_id} without any role"
            )
        await self._session.delete(existing)
        self._record(AuditAction.REVOKE, user_id, role, actor_highest_role, actor_id)
        await self._session.flush()
        return True

    def _record(
        self,
        action: AuditAction,
        user_id: str,
        role: Role,
        actor_highest_role: RoleLike | None,
        actor_id: str | None,
    ) -> None:
        value = {"role": role.slug}
        self._audit.record(
            action=action,
            target_type=AuditTargetType.USER,
            target_id=user_id,
            role_id=role.id,
            actor_id=actor_id,
            actor_role_id=getattr(actor_highest_role, "id", None),
            old_value=value if action is AuditAction.REVOKE else None,
            new_value=value if action is AuditAction.GRANT else None,
        )

    async def _lock_user_rows(self, user_id: str) -> None:
        # Row locks for server databases; SQLite ignores FOR UPDATE.
        await self._session.execute(
            select(UserRoleAssignment.id)
            .where(UserRoleAssignment.user_id == user_id)
            .with_for_update()
        )

    async def _assignment(self, user_id: str, role_id: UUID) -> UserRoleAssignment | None:
        result = await self._session.execute(
            select(UserRoleAssignment)
            .where(
                UserRoleAssignment.user_id == user_id,
                UserRoleAssignment.role_id == role_id,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _count_assignments(self, user_id: str) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(UserRoleAssignment)
            .where(UserRoleAssignment.user_id == user_id)
        )
        return int(result.scalar_one() or 0)

    def _compute_or_none(
        self,
        roles: Iterable[RoleLike],
        user_id: str,
    ) -> EffectivePermissions | None:
        roles = list(roles)
        if not roles:
            return None
        return self._resolver.compute_effective_permissions(roles, user_id=user_id)


__all__ = [
    "AssignmentAction",
    "AssignmentChange",
    "AssignmentCoordinator",
    "AssignmentFailure",
    "AssignmentLocks",
    "AssignmentPreview",
    "AssignmentResult",
]
