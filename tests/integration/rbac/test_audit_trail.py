from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamchat_rbac.core.rbac import AuditAction, AuditTargetType, RoleForbiddenError, RoleValidationError
from teamchat_rbac.features.rbac import AssignmentChange, RbacEngine, RoleCreate, RoleUpdate
from teamchat_rbac.models import Role, RoleAuditEntry


@pytest.mark.asyncio
async def test_role_lifecycle_is_recorded_with_old_and_new_values(
    session: AsyncSession,
    rbac: RbacEngine,
) -> None:
    store = rbac.store(session)
    role = await store.create_role(
        RoleCreate(name="Helpers", position=30, permissions=["pin_messages"]),
        actor_id="alice",
    )
    await session.commit()
    await store.update_role(
        role.id,
        RoleUpdate(name="Helpers Plus", permissions=["pin_messages", "delete_messages"]),
        expected_version=1,
        actor_id="bob",
    )
    await session.commit()
    await store.delete_role(role.id, actor_id="alice")
    await session.commit()

    deleted, modified, created = await rbac.audit(session).list_audit_entries(
        target_type=AuditTargetType.ROLE, target_id=role.id
    )

    assert created.action is AuditAction.CREATE
    assert created.actor_id == "alice"
    assert created.old_value is None
    assert created.new_value["slug"] == "helpers"
    assert created.new_value["permissions"] == ["pin_messages"]

    assert modified.action is AuditAction.MODIFY
    assert modified.actor_id == "bob"
    assert modified.old_value["name"] == "Helpers"
    assert modified.old_value["version"] == 1
    assert modified.new_value["name"] == "Helpers Plus"
    assert modified.new_value["permissions"] == ["delete_messages", "pin_messages"]
    assert modified.new_value["version"] == 2

    assert deleted.action is AuditAction.DELETE
    assert deleted.role_id == role.id
    assert deleted.old_value["slug"] == "helpers-plus"
    assert deleted.new_value == {"assignments_removed": 0, "backfilled": 0}


@pytest.mark.asyncio
async def test_rejected_role_changes_leave_no_entries(
    session: AsyncSession,
    rbac: RbacEngine,
    built_in: dict[str, Role],
) -> None:
    store = rbac.store(session)
    with pytest.raises(RoleValidationError):
        await store.create_role(RoleCreate(name=""), actor_id="alice")
    with pytest.raises(RoleForbiddenError):
        await store.delete_role(built_in["owner"].id, actor_id="alice")

    total = await session.scalar(select(func.count()).select_from(RoleAuditEntry))
    assert total == 0


@pytest.mark.asyncio
async def test_assignment_changes_record_actor_and_role(
    session: AsyncSession,
    rbac: RbacEngine,
    built_in: dict[str, Role],
) -> None:
    coordinator = rbac.assignments(session)
    admin = built_in["admin"]
    await coordinator.ensure_default_roles("u-audit")

    result = await coordinator.apply(
        "u-audit",
        admin,
        [
            AssignmentChange.add(built_in["moderator"].id),
            AssignmentChange.add(built_in["owner"].id),
            AssignmentChange.remove(built_in["member"].id),
            AssignmentChange.remove(built_in["guest"].id),
        ],
        actor_id="carol",
    )
    await session.commit()

    assert [failure.code for failure in result.errors] == ["forbidden"]
    revoked, granted, default = await coordinator.list_audit_entries("u-audit")

    assert default.action is AuditAction.GRANT
    assert default.actor_id is None
    assert default.new_value == {"role": "member", "default": True}

    assert granted.action is AuditAction.GRANT
    assert granted.target_type is AuditTargetType.USER
    assert granted.target_id == "u-audit"
    assert granted.role_id == built_in["moderator"].id
    assert granted.actor_id == "carol"
    assert granted.actor_role_id == admin.id
    assert granted.new_value == {"role": "moderator"}

    assert revoked.action is AuditAction.REVOKE
    assert revoked.role_id == built_in["member"].id
    assert revoked.old_value == {"role": "member"}
    assert revoked.new_value is None


@pytest.mark.asyncio
async def test_noop_and_rolled_back_changes_are_not_recorded(
    session: AsyncSession,
    rbac: RbacEngine,
    built_in: dict[str, Role],
) -> None:
    coordinator = rbac.assignments(session)
    owner = built_in["owner"]
    await coordinator.apply("u-quiet", owner, [AssignmentChange.add(built_in["guest"].id)])
    await session.commit()

    await coordinator.apply(
        "u-quiet",
        owner,
        [AssignmentChange.add(built_in["guest"].id), AssignmentChange.remove(built_in["guest"].id)],
    )
    await session.commit()
    await coordinator.apply("u-quiet", owner, [AssignmentChange.add(built_in["member"].id)])
    await session.rollback()

    entries = await coordinator.list_audit_entries("u-quiet")
    assert [entry.action for entry in entries] == [AuditAction.GRANT]


@pytest.mark.asyncio
async def test_audit_entries_filter_newest_first(
    session: AsyncSession,
    rbac: RbacEngine,
    built_in: dict[str, Role],
) -> None:
    coordinator = rbac.assignments(session)
    owner = built_in["owner"]
    await coordinator.apply("u-one", owner, [AssignmentChange.add(built_in["guest"].id)], actor_id="alice")
    await coordinator.apply("u-two", owner, [AssignmentChange.add(built_in["guest"].id)], actor_id="bob")
    await coordinator.apply("u-one", owner, [AssignmentChange.add(built_in["member"].id)], actor_id="bob")
    await session.commit()
    trail = rbac.audit(session)

    everything = await trail.list_audit_entries()
    assert [entry.target_id for entry in everything] == ["u-one", "u-two", "u-one"]
    assert [entry.occurred_at for entry in everything] == sorted(
        (entry.occurred_at for entry in everything), reverse=True
    )

    by_bob = await trail.list_audit_entries(actor_id="bob")
    assert [(entry.target_id, entry.new_value["role"]) for entry in by_bob] == [
        ("u-one", "member"),
        ("u-two", "guest"),
    ]
    assert len(await trail.list_audit_entries(target_id="u-one")) == 2
    assert len(await trail.list_audit_entries(role_id=built_in["guest"].id)) == 2
    assert len(await trail.list_audit_entries(action=AuditAction.REVOKE)) == 0
    assert len(await trail.list_audit_entries(actor_role_id=owner.id)) == 3

    latest = await trail.list_audit_entries(limit=1)
    assert [entry.id for entry in latest] == [everything[0].id]

    oldest = everything[-1].occurred_at
    assert len(await trail.list_audit_entries(since=oldest)) == 3
    assert await trail.list_audit_entries(since=datetime.now(UTC) + timedelta(hours=1)) == []
