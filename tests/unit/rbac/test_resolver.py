from __future__ import annotations

import pytest

from teamchat_rbac.core.rbac import InvariantViolationError, NotFoundError
from teamchat_rbac.features.rbac import (
    EffectivePermissionsCache,
    PermissionCatalog,
    PermissionResolver,
)


@pytest.fixture()
def resolver(catalog: PermissionCatalog) -> PermissionResolver:
    return PermissionResolver(catalog=catalog, cache=EffectivePermissionsCache(max_entries=8))


def test_empty_role_set_is_an_invariant_violation(resolver: PermissionResolver) -> None:
    with pytest.raises(InvariantViolationError):
        resolver.compute_effective_permissions([], user_id="u-1")


def test_union_of_assigned_roles(resolver: PermissionResolver, make_role) -> None:
    member = make_role("Member", 20, ["view_channels", "send_messages"])
    moderator = make_role("Moderator", 70, ["send_messages", "kick_members"])

    effective = resolver.compute_effective_permissions([member, moderator], user_id="u-1")

    assert effective.user_id == "u-1"
    assert effective.permissions == {"view_channels", "send_messages", "kick_members"}
    assert effective.granted == effective.permissions
    assert effective.highest_role.id == moderator.id
    assert [role.name for role in effective.roles] == ["Moderator", "Member"]
    assert not effective.is_administrator


def test_adding_a_role_never_removes_permissions(resolver: PermissionResolver, make_role) -> None:
    roles = [
        make_role("A", 10, ["view_channels"]),
        make_role("B", 20, ["send_messages", "pin_messages"]),
        make_role("C", 5, ["ban_members"]),
    ]

    previous: frozenset[str] = frozenset()
    for count in range(1, len(roles) + 1):
        current = resolver.compute_effective_permissions(roles[:count]).permissions
        assert previous <= current
        previous = current


def test_administrator_grants_the_whole_catalog(
    resolver: PermissionResolver,
    catalog: PermissionCatalog,
    make_role,
) -> None:
    root = make_role("Root", 1, ["administrator"])

    effective = resolver.compute_effective_permissions([root])

    assert effective.is_administrator
    assert effective.permissions == catalog.keys()
    assert effective.granted == {"administrator"}
    for definition in catalog:
        assert effective.has(definition.key)


def test_highest_role_tie_breaks_on_creation(resolver: PermissionResolver, make_role) -> None:
    first = make_role("First", 40)
    second = make_role("Second", 40)

    effective = resolver.compute_effective_permissions([second, first])

    assert effective.highest_role.name == "First"


def test_repeated_roles_are_counted_once(resolver: PermissionResolver, make_role) -> None:
    member = make_role("Member", 20, ["send_messages"])

    effective = resolver.compute_effective_permissions([member, member])

    assert len(effective.roles) == 1


def test_results_are_cached_per_role_versions(resolver: PermissionResolver, make_role) -> None:
    member = make_role("Member", 20, ["send_messages"])

    first = resolver.compute_effective_permissions([member], user_id="alice")
    second = resolver.compute_effective_permissions([member], user_id="bob")

    assert second.user_id == "bob"
    assert first.permissions == second.permissions
    stats = resolver.cache.stats()
    assert (stats.hits, stats.misses, stats.size) == (1, 1, 1)


def test_authorize_reports_missing_permissions(resolver: PermissionResolver, make_role) -> None:
    effective = resolver.compute_effective_permissions([make_role("Member", 20, ["send_messages"])])

    decision = resolver.authorize(effective, ["send_messages", "ban_members"])

    assert not decision.is_authorized
    assert decision.missing == ("ban_members",)
    assert decision.required == ("send_messages", "ban_members")
    assert resolver.authorize(effective, "send_messages").is_authorized
    assert resolver.has_permission(effective, "send_messages")
    assert not resolver.has_permission(effective, "ban_members")


def test_authorize_rejects_unknown_keys(resolver: PermissionResolver, make_role) -> None:
    effective = resolver.compute_effective_permissions([make_role("Member", 20, ["send_messages"])])

    with pytest.raises(NotFoundError):
        resolver.authorize(effective, ["fly"])
    with pytest.raises(NotFoundError):
        resolver.has_permission(effective, "fly")
