import pytest

from app.features.permissions.constants import Action, Role
from app.features.permissions.defaults import DEFAULT_PERMISSIONS, FALLBACK_KINDS, FALLBACK_MATRIX
from app.features.permissions.resolver import DecisionReason, DecisionSource, PermissionResolver
from app.features.permissions.store import InMemoryPermissionStore, PermissionRule


def rule(role, kind, **flags):
    return PermissionRule(role=role, resource_kind=kind, **flags)


async def test_store_row_answers_directly():
    store = InMemoryPermissionStore([rule(Role.USER, "grids", can_view=True)])
    resolver = PermissionResolver(store)

    allowed = await resolver.resolve(Role.USER, "grids", Action.VIEW)
    denied = await resolver.resolve(Role.USER, "grids", Action.EDIT)

    assert allowed.allow and allowed.source is DecisionSource.STORE
    assert not denied.allow
    assert denied.source is DecisionSource.STORE
    assert denied.reason is DecisionReason.DENIED


async def test_store_row_overrides_fallback_even_when_stricter():
    # Fallback lets a user create grids; the stored row says no
    store = InMemoryPermissionStore([rule(Role.USER, "grids", can_view=True)])
    decision = await PermissionResolver(store).resolve(Role.USER, "grids", Action.CREATE)
    assert not decision.allow
    assert decision.source is DecisionSource.STORE


async def test_flags_are_independent():
    store = InMemoryPermissionStore([rule(Role.ADMIN, "announcements", can_manage=True)])
    resolver = PermissionResolver(store)
    assert (await resolver.resolve(Role.ADMIN, "announcements", Action.MANAGE)).allow
    assert not (await resolver.resolve(Role.ADMIN, "announcements", Action.EDIT)).allow


async def test_missing_row_uses_fallback():
    decision = await PermissionResolver(InMemoryPermissionStore()).resolve(Role.USER, "grids", Action.CREATE)
    assert decision.allow
    assert decision.source is DecisionSource.FALLBACK


async def test_missing_row_without_fallback_entry_is_unconfigured_deny():
    resolver = PermissionResolver(InMemoryPermissionStore())
    for action in Action:
        decision = await resolver.resolve(Role.ADMIN, "no_such_kind", action)
        assert not decision.allow
        assert decision.reason is DecisionReason.UNCONFIGURED


@pytest.mark.parametrize("kind", ["my_resources", "view_donor_contact", "trash_supplies", "role_permissions"])
async def test_kinds_outside_fallback_deny_when_row_missing(kind):
    resolver = PermissionResolver(InMemoryPermissionStore())
    for role in (Role.GUEST, Role.USER, Role.GRID_MANAGER, Role.ADMIN):
        for action in Action:
            assert not (await resolver.resolve(role, kind, action)).allow


async def test_store_outage_degrades_to_fallback(caplog):
    store = InMemoryPermissionStore([rule(Role.USER, "grids")])
    store.available = False

    with caplog.at_level("WARNING"):
        decision = await PermissionResolver(store).resolve(Role.USER, "grids", Action.VIEW)

    assert decision.allow
    assert decision.source is DecisionSource.FALLBACK
    assert "degraded mode" in caplog.text


async def test_super_admin_bypasses_store():
    store = InMemoryPermissionStore([rule(Role.SUPER_ADMIN, "grids")])
    store.available = False
    resolver = PermissionResolver(store)

    for kind in ("grids", "no_such_kind", "trash_supplies"):
        for action in Action:
            decision = await resolver.resolve(Role.SUPER_ADMIN, kind, action)
            assert decision.allow
            assert decision.source is DecisionSource.BUILTIN
    assert store.calls == 0


def test_fallback_is_a_subset_of_seed():
    seed = {(row["role"], row["permission_key"]): row for row in DEFAULT_PERMISSIONS}
    assert FALLBACK_MATRIX
    for (role, kind), granted in FALLBACK_MATRIX.items():
        assert kind in FALLBACK_KINDS
        row = seed[(role, kind)]
        assert granted == frozenset(a for a in Action if row[a.column])


def test_seed_has_one_row_per_role_and_key():
    keys = [(row["role"], row["permission_key"]) for row in DEFAULT_PERMISSIONS]
    assert len(keys) == len(set(keys))
