from __future__ import annotations

import pytest

from teamchat_rbac.core.rbac import (
    SYSTEM_ROLES,
    NotFoundError,
    PermissionCategory,
    PermissionDef,
    PermissionNotFoundError,
)
from teamchat_rbac.features.rbac import PermissionCatalog


def test_get_returns_registered_definition(catalog: PermissionCatalog) -> None:
    definition = catalog.get("ban_members")

    assert definition.category is PermissionCategory.MEMBERS
    assert definition.is_dangerous
    assert not definition.requires_admin


def test_get_unknown_key_raises_not_found(catalog: PermissionCatalog) -> None:
    with pytest.raises(PermissionNotFoundError) as excinfo:
        catalog.get("launch_rockets")

    assert isinstance(excinfo.value, NotFoundError)
    assert excinfo.value.key == "launch_rockets"


def test_flag_lookups(catalog: PermissionCatalog) -> None:
    assert catalog.is_dangerous("administrator")
    assert not catalog.is_dangerous("send_messages")
    assert catalog.requires_admin("manage_billing")
    assert catalog.requires_admin("manage_roles")
    assert not catalog.requires_admin("kick_members")

    with pytest.raises(NotFoundError):
        catalog.is_dangerous("nope")
    with pytest.raises(NotFoundError):
        catalog.requires_admin("nope")


def test_list_by_category_preserves_registry_order(catalog: PermissionCatalog) -> None:
    keys = [definition.key for definition in catalog.list_by_category(PermissionCategory.ROLES)]

    assert keys == [
        "view_roles",
        "create_roles",
        "edit_roles",
        "delete_roles",
        "assign_roles",
        "manage_roles",
    ]
    assert catalog.list_by_category("admin") == catalog.list_by_category(PermissionCategory.ADMIN)


def test_catalog_contents(catalog: PermissionCatalog) -> None:
    assert len(catalog) == 27
    assert "administrator" in catalog
    assert "delete_everything" not in catalog
    assert catalog.categories() == tuple(PermissionCategory)
    assert catalog.dangerous_keys() == {
        "delete_channels",
        "ban_members",
        "create_roles",
        "delete_roles",
        "manage_roles",
        "manage_settings",
        "manage_billing",
        "administrator",
    }


def test_unknown_keys_and_sort_keys(catalog: PermissionCatalog) -> None:
    assert catalog.unknown_keys(["send_messages", "zap", "zap", "boom"]) == ("zap", "boom")
    assert catalog.sort_keys({"administrator", "view_channels", "ban_members"}) == (
        "view_channels",
        "ban_members",
        "administrator",
    )


def test_duplicate_definitions_are_rejected() -> None:
    definition = PermissionDef(
        key="send_messages",
        category=PermissionCategory.MESSAGES,
        label="Send",
        description="Send",
    )

    with pytest.raises(ValueError):
        PermissionCatalog([definition, definition])


def test_built_in_roles_use_catalog_keys(catalog: PermissionCatalog) -> None:
    slugs = [definition.slug for definition in SYSTEM_ROLES]

    assert len(set(slugs)) == len(slugs)
    for definition in SYSTEM_ROLES:
        assert catalog.unknown_keys(definition.permissions) == ()
