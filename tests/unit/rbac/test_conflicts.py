from __future__ import annotations

import pytest

from teamchat_rbac.features.rbac import ConflictDetector, ConflictType, PermissionCatalog


@pytest.fixture()
def detector(catalog: PermissionCatalog) -> ConflictDetector:
    return ConflictDetector(catalog=catalog)


def _of_type(conflicts, conflict_type: ConflictType):
    return [conflict for conflict in conflicts if conflict.type is conflict_type]


def test_empty_role_set_has_no_conflicts(detector: ConflictDetector) -> None:
    assert detector.detect_permission_conflicts([]) == []


def test_single_dangerous_permission_yields_one_record(detector: ConflictDetector, make_role) -> None:
    bouncer = make_role("Bouncer", 30, ["send_messages", "ban_members"])

    conflicts = detector.detect_permission_conflicts([bouncer])

    assert len(conflicts) == 1
    assert conflicts[0].type is ConflictType.DANGEROUS
    assert conflicts[0].permission == "ban_members"
    assert conflicts[0].roles == (bouncer,)
    assert "Bouncer" in conflicts[0].message


def test_low_role_with_role_management_is_an_escalation(detector: ConflictDetector, make_role) -> None:
    support = make_role("Support", 5, ["manage_roles"])
    trainee = make_role("Trainee", 20, ["send_messages"])

    conflicts = detector.detect_permission_conflicts([support, trainee])

    escalations = _of_type(conflicts, ConflictType.ESCALATION)
    assert len(escalations) == 1
    assert escalations[0].roles == (support,)
    assert escalations[0].permission == "manage_roles"
    assert escalations[0].role_names == ("Support",)


def test_role_management_on_top_role_is_not_an_escalation(detector: ConflictDetector, make_role) -> None:
    lead = make_role("Lead", 50, ["manage_roles"])
    trainee = make_role("Trainee", 20, ["send_messages"])

    conflicts = detector.detect_permission_conflicts([lead, trainee])

    assert _of_type(conflicts, ConflictType.ESCALATION) == []


def test_outranking_role_with_role_management_clears_escalation(
    detector: ConflictDetector,
    make_role,
) -> None:
    support = make_role("Support", 5, ["manage_roles"])
    admin = make_role("Admin", 90, ["administrator"])

    conflicts = detector.detect_permission_conflicts([support, admin])

    assert _of_type(conflicts, ConflictType.ESCALATION) == []


def test_combined_roles_reaching_full_coverage(
    detector: ConflictDetector,
    catalog: PermissionCatalog,
    make_role,
) -> None:
    everything = [key for key in catalog.sort_keys(catalog.keys()) if key != "administrator"]
    upper = make_role("Upper", 40, [key for key in everything if key.startswith(("manage", "view", "assign"))])
    lower = make_role("Lower", 30, [key for key in everything if key not in upper.permission_keys])

    conflicts = detector.detect_permission_conflicts([lower, upper])

    escalations = _of_type(conflicts, ConflictType.ESCALATION)
    assert len(escalations) == 1
    assert escalations[0].permission == "administrator"
    assert escalations[0].roles == (upper, lower)
    assert conflicts[0] is escalations[0]


def test_explicit_administrator_is_not_combinatorial(
    detector: ConflictDetector,
    catalog: PermissionCatalog,
    make_role,
) -> None:
    owner = make_role("Owner", 100, catalog.keys())

    conflicts = detector.detect_permission_conflicts([owner])

    assert _of_type(conflicts, ConflictType.ESCALATION) == []


def test_dangerous_records_list_every_contributor_in_catalog_order(
    detector: ConflictDetector,
    make_role,
) -> None:
    janitor = make_role("Janitor", 10, ["delete_channels", "ban_members"])
    warden = make_role("Warden", 60, ["ban_members"])

    conflicts = detector.detect_permission_conflicts([janitor, warden])

    assert [conflict.permission for conflict in conflicts] == ["delete_channels", "ban_members"]
    assert conflicts[1].roles == (warden, janitor)
