from __future__ import annotations

import random
from datetime import UTC, datetime

from teamchat_rbac.features.rbac import HierarchyResolver, highest_role, sort_roles_by_position


def test_sort_orders_by_position_then_creation(make_role) -> None:
    early = make_role("Early", 10)
    late = make_role("Late", 10)
    top = make_role("Top", 50)
    bottom = make_role("Bottom", 1)

    assert sort_roles_by_position([late, bottom, early, top]) == [top, early, late, bottom]


def test_sort_is_total_for_shuffled_input(make_role) -> None:
    roles = [make_role(f"R{i}", i % 4) for i in range(12)]
    shuffled = roles[:]
    random.Random(7).shuffle(shuffled)

    ordered = sort_roles_by_position(shuffled)

    assert ordered == sort_roles_by_position(roles)
    for first, second in zip(ordered, ordered[1:]):
        assert first.position >= second.position
        if first.position == second.position:
            assert first.created_at <= second.created_at


def test_highest_role(make_role) -> None:
    stamp = datetime(2024, 6, 1, tzinfo=UTC)
    first = make_role("First", 30, created_at=stamp)
    second = make_role("Second", 30, created_at=stamp.replace(month=7))

    assert highest_role([second, make_role("Low", 2), first]) is first
    assert highest_role([]) is None


def test_can_manage_requires_strictly_higher_position(hierarchy: HierarchyResolver, make_role) -> None:
    moderator = make_role("Moderator", 70, ["kick_members"])
    peer = make_role("Peer", 70)
    member = make_role("Member", 20)

    assert hierarchy.can_manage_role(moderator, member)
    assert not hierarchy.can_manage_role(member, moderator)
    assert not hierarchy.can_manage_role(moderator, peer)
    assert not hierarchy.can_manage_role(moderator, moderator)


def test_administrator_manages_everything_but_the_top_role(
    hierarchy: HierarchyResolver,
    make_role,
) -> None:
    owner = make_role("Owner", 100, ["administrator"], built_in=True)
    ops = make_role("Ops", 5, ["administrator"])
    admin = make_role("Admin", 90, ["manage_roles"], built_in=True)

    assert hierarchy.can_manage_role(ops, admin)
    assert not hierarchy.can_manage_role(ops, owner)
    assert not hierarchy.can_manage_role(ops, ops)
    assert hierarchy.can_manage_role(owner, owner)
    assert not hierarchy.can_manage_role(admin, owner)


def test_actor_without_role_manages_nothing(hierarchy: HierarchyResolver, make_role) -> None:
    guest = make_role("Guest", 1)

    assert not hierarchy.can_manage_role(None, guest)
    assert "no role" in hierarchy.explain(None, guest)


def test_explain_names_both_roles_and_gap(hierarchy: HierarchyResolver, make_role) -> None:
    admin = make_role("Admin", 50)
    owner = make_role("Founder", 100)

    message = hierarchy.explain(admin, owner)

    assert message is not None
    assert "'Admin' (position 50)" in message
    assert "'Founder' (position 100)" in message
    assert "51 higher" in message
    assert hierarchy.explain(owner, admin) is None


def test_get_manageable_roles_is_sorted_and_filtered(hierarchy: HierarchyResolver, make_role) -> None:
    moderator = make_role("Moderator", 70)
    member = make_role("Member", 20)
    guest = make_role("Guest", 10)
    admin = make_role("Admin", 90)

    assert hierarchy.get_manageable_roles(moderator, [guest, admin, moderator, member]) == [member, guest]


def test_compare_roles_and_permission_diff(hierarchy: HierarchyResolver, make_role) -> None:
    moderator = make_role("Moderator", 70, ["send_messages", "kick_members", "pin_messages"])
    member = make_role("Member", 20, ["view_channels", "send_messages"])

    comparison = hierarchy.compare_roles(moderator, member)

    assert comparison.shared == ("send_messages",)
    assert comparison.only_in_a == ("pin_messages", "kick_members")
    assert comparison.only_in_b == ("view_channels",)
    assert comparison.position_difference == 50
    assert comparison.a_can_manage_b
    assert not comparison.b_can_manage_a

    diff = hierarchy.permission_diff(member, moderator)
    assert diff.added == ("pin_messages", "kick_members")
    assert diff.removed == ("view_channels",)
    assert diff.unchanged == ("send_messages",)
