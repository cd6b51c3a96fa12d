import copy

import pytest

from app.features.permissions.acting_role import RequestContext, build_context
from app.features.permissions.authorizer import Ownership
from app.features.permissions.constants import Facet, Role
from app.features.permissions.privacy import REDACTED, filter_contacts


VOLUNTEER = "01HVOLUNTEER00000000000001"
GRID_OWNER = "01HGRIDOWNER00000000000002"
STRANGER = "01HSTRANGER000000000000003"
GRID_ID = "01HGRID0000000000000000004"


def viewer(role, actor_id=STRANGER):
    return RequestContext(actor_id=actor_id, actual_role=role, effective_role=role)


def registration(**overrides):
    record = {
        "id": "01HREG00000000000000000005",
        "grid_id": GRID_ID,
        "user_id": VOLUNTEER,
        "created_by_id": VOLUNTEER,
        "volunteer_name": "Lin",
        "volunteer_phone": "0912-345-678",
        "volunteer_email": "lin@example.org",
    }
    record.update(overrides)
    return record


PARENTS = {GRID_ID: Ownership(created_by_id=GRID_OWNER)}


def test_guest_sees_grid_contact_because_it_is_public():
    grids = [
        {"id": "g1", "code": "A-1", "contact_info": "Chen 0911-000-111", "created_by_id": GRID_OWNER},
        {"id": "g2", "code": "A-2", "contact_info": "Wu 0922-000-222", "created_by_id": STRANGER},
    ]
    guest = build_context(None, None, None)

    for has_facet in (True, False):
        out = filter_contacts(grids, guest, Facet.GRID_CONTACT, has_facet)
        assert [g["contact_info"] for g in out] == ["Chen 0911-000-111", "Wu 0922-000-222"]


def test_other_viewer_without_facet_gets_sentinel():
    out = filter_contacts(registration(), viewer(Role.USER), Facet.VOLUNTEER_CONTACT, False, PARENTS)

    assert out["volunteer_phone"] == REDACTED
    assert out["volunteer_email"] == REDACTED
    assert out["volunteer_phone"] is not None
    assert out["volunteer_name"] == "Lin"


def test_sentinel_differs_from_empty_values():
    assert REDACTED not in ("", None)
    out = filter_contacts(registration(volunteer_email=None), viewer(Role.USER), Facet.VOLUNTEER_CONTACT, False)
    assert out["volunteer_email"] == REDACTED


def test_volunteer_sees_own_contact_without_facet():
    out = filter_contacts(registration(), viewer(Role.USER, VOLUNTEER), Facet.VOLUNTEER_CONTACT, False, PARENTS)
    assert out["volunteer_phone"] == "0912-345-678"


def test_facet_and_parent_ownership_act_together():
    owner = viewer(Role.GRID_MANAGER, GRID_OWNER)
    stranger = viewer(Role.GRID_MANAGER, STRANGER)

    assert filter_contacts(registration(), owner, Facet.VOLUNTEER_CONTACT, True, PARENTS)["volunteer_phone"] == "0912-345-678"
    # facet without owning the parent grid
    assert filter_contacts(registration(), stranger, Facet.VOLUNTEER_CONTACT, True, PARENTS)["volunteer_phone"] == REDACTED
    # owning the parent grid without the facet
    assert filter_contacts(registration(), owner, Facet.VOLUNTEER_CONTACT, False, PARENTS)["volunteer_phone"] == REDACTED


def test_parent_managed_by_viewer_counts():
    parents = {GRID_ID: Ownership(created_by_id=STRANGER, grid_manager_id=GRID_OWNER)}
    out = filter_contacts(registration(), viewer(Role.USER, GRID_OWNER), Facet.VOLUNTEER_CONTACT, True, parents)
    assert out["volunteer_email"] == "lin@example.org"


def test_missing_parent_is_not_ownership():
    out = filter_contacts(registration(), viewer(Role.USER, GRID_OWNER), Facet.VOLUNTEER_CONTACT, True, {})
    assert out["volunteer_phone"] == REDACTED


def test_admin_facet_covers_every_record():
    out = filter_contacts(registration(), viewer(Role.ADMIN), Facet.VOLUNTEER_CONTACT, True, PARENTS)
    assert out["volunteer_phone"] == "0912-345-678"
    out = filter_contacts(registration(), viewer(Role.ADMIN), Facet.VOLUNTEER_CONTACT, False, PARENTS)
    assert out["volunteer_phone"] == REDACTED


def test_admin_acting_as_user_loses_unscoped_access():
    acting = build_context(STRANGER, Role.ADMIN, "user")
    out = filter_contacts(registration(), acting, Facet.VOLUNTEER_CONTACT, True, PARENTS)
    assert out["volunteer_phone"] == REDACTED


@pytest.mark.parametrize("facet", list(Facet))
def test_super_admin_is_never_redacted(facet):
    record = {
        "grid_id": GRID_ID, "contact_info": "c", "volunteer_phone": "p", "volunteer_email": "e",
        "donor_phone": "p", "donor_email": "e", "donor_contact": "c",
    }
    out = filter_contacts(record, viewer(Role.SUPER_ADMIN), facet, False)
    assert out == record


def test_donor_sees_own_donation():
    donation = {
        "grid_id": GRID_ID, "created_by_id": VOLUNTEER, "name": "Water", "donor_phone": "0933",
        "donor_email": "d@example.org", "donor_contact": "LINE: d",
    }
    mine = filter_contacts(donation, viewer(Role.USER, VOLUNTEER), Facet.DONOR_CONTACT, False, PARENTS)
    theirs = filter_contacts(donation, viewer(Role.USER), Facet.DONOR_CONTACT, False, PARENTS)

    assert mine["donor_contact"] == "LINE: d"
    assert {theirs[f] for f in ("donor_phone", "donor_email", "donor_contact")} == {REDACTED}


def test_filter_is_idempotent_and_does_not_mutate_input():
    records = [registration(), registration(id="other", user_id=STRANGER, created_by_id=STRANGER)]
    original = copy.deepcopy(records)
    who = viewer(Role.USER)

    once = filter_contacts(records, who, Facet.VOLUNTEER_CONTACT, False, PARENTS)
    twice = filter_contacts(once, who, Facet.VOLUNTEER_CONTACT, False, PARENTS)

    assert once == twice
    assert records == original
    assert once[1]["volunteer_phone"] == "0912-345-678"


def test_privileged_pass_does_not_leak_into_unprivileged_pass():
    records = [registration()]
    privileged = filter_contacts(records, viewer(Role.SUPER_ADMIN), Facet.VOLUNTEER_CONTACT, True, PARENTS)
    unprivileged = filter_contacts(privileged, viewer(Role.USER), Facet.VOLUNTEER_CONTACT, False, PARENTS)

    assert privileged[0]["volunteer_phone"] == "0912-345-678"
    assert unprivileged[0]["volunteer_phone"] == REDACTED
    assert privileged[0] is not unprivileged[0]


def test_single_and_list_agree():
    who = viewer(Role.GRID_MANAGER, GRID_OWNER)
    records = [registration(), registration(grid_id="elsewhere")]
    as_list = filter_contacts(records, who, Facet.VOLUNTEER_CONTACT, True, PARENTS)
    one_by_one = [filter_contacts(r, who, Facet.VOLUNTEER_CONTACT, True, PARENTS) for r in records]

    assert as_list == one_by_one
    assert [r["volunteer_phone"] for r in as_list] == ["0912-345-678", REDACTED]
