from __future__ import annotations

from uuid import uuid4

from teamchat_rbac.features.rbac import AssignmentAction, AssignmentChange, AssignmentCoordinator


def test_plan_lists_additions_then_removals() -> None:
    keep, drop_a, drop_b, add_a, add_b = (uuid4() for _ in range(5))

    changes = AssignmentCoordinator.plan([drop_a, keep, drop_b], [add_b, keep, add_a])

    assert changes == [
        AssignmentChange(role_id=add_b, action=AssignmentAction.ADD),
        AssignmentChange(role_id=add_a, action=AssignmentAction.ADD),
        AssignmentChange(role_id=drop_a, action=AssignmentAction.REMOVE),
        AssignmentChange(role_id=drop_b, action=AssignmentAction.REMOVE),
    ]


def test_plan_of_identical_sets_is_empty() -> None:
    a, b = uuid4(), uuid4()

    assert AssignmentCoordinator.plan([a, b], [b, a]) == []


def test_plan_ignores_duplicate_ids() -> None:
    a, b = uuid4(), uuid4()

    assert AssignmentCoordinator.plan([a, a], [b, b]) == [AssignmentChange.add(b), AssignmentChange.remove(a)]
