import pytest

from app.features.permissions.acting_role import RequestContext, build_context
from app.features.permissions.authorizer import Authorizer, Ownership, ownership_of
from app.features.permissions.constants import Action, Role
from app.features.permissions.exceptions import (
    AuthorizationError,
    CascadeConflict,
    Denied,
    Unauthenticated,
    Unconfigured,
)
from app.features.permissions.resolver import DecisionReason, PermissionResolver
from app.features.permissions.store import InMemoryPermissionStore, PermissionRule


ACTOR = "01HACTOR0000000000000000AA"
OTHER = "01HOTHER0000000000000000BB"


def ctx_for(role, actor_id=ACTOR):
    return RequestContext(actor_id=actor_id, actual_role=role, effective_role=role)


def authorizer_with(*rules):
    store = InMemoryPermissionStore(list(rules))
    return Authorizer(PermissionResolver(store)), store


def rule(role, kind, **flags):
    return PermissionRule(role=role, resource_kind=kind, **flags)


async def test_owner_with_owner_scoped_grant_is_allowed():
    authorizer, _ = authorizer_with(
        rule(Role.USER, "grids", can_view=True, can_create=True),
        rule(Role.USER, "my_resources", can_view=True, can_edit=True),
    )
    decision = await authorizer.authorize(
        ctx_for(Role.USER), "grids", Action.EDIT, Ownership(created_by_id=ACTOR)
    )
    assert decision.allow
    assert decision.reason is DecisionReason.OWNER_GRANTED


async def test_owner_without_owner_scoped_row_and_no_base_grant_is_denied():
    authorizer, _ = authorizer_with(rule(Role.USER, "grids", can_view=True, can_create=True))
    resource = Ownership(created_by_id=ACTOR)

    decision = await authorizer.authorize(ctx_for(Role.USER), "grids", Action.EDIT, resource)
    assert not decision.allow

    with pytest.raises(Denied):
        await authorizer.ensure(ctx_for(Role.USER), "grids", Action.EDIT, resource)


async def test_grid_manager_counts_as_owner():
    authorizer, _ = authorizer_with(
        rule(Role.GRID_MANAGER, "grids", can_view=True),
        rule(Role.GRID_MANAGER, "my_resources", can_edit=True),
    )
    resource = Ownership(created_by_id=OTHER, grid_manager_id=ACTOR)
    assert (await authorizer.authorize(ctx_for(Role.GRID_MANAGER), "grids", Action.EDIT, resource)).allow

    someone_elses = Ownership(created_by_id=OTHER, grid_manager_id=OTHER)
    decision = await authorizer.authorize(ctx_for(Role.GRID_MANAGER), "grids", Action.EDIT, someone_elses)
    assert not decision.allow
    assert decision.reason is DecisionReason.NOT_OWNER


@pytest.mark.parametrize("action", [Action.EDIT, Action.DELETE])
async def test_ownership_alone_never_allows(action):
    authorizer, _ = authorizer_with(
        rule(Role.USER, "grids"),
        rule(Role.USER, "my_resources"),
    )
    resource = Ownership(created_by_id=ACTOR, grid_manager_id=ACTOR)
    assert not (await authorizer.authorize(ctx_for(Role.USER), "grids", action, resource)).allow


async def test_owner_falls_back_to_base_grant():
    authorizer, _ = authorizer_with(
        rule(Role.ADMIN, "grids", can_edit=True),
        rule(Role.ADMIN, "my_resources"),
    )
    decision = await authorizer.authorize(
        ctx_for(Role.ADMIN), "grids", Action.EDIT, Ownership(created_by_id=ACTOR)
    )
    assert decision.allow
    assert decision.reason is DecisionReason.GRANTED


async def test_non_owner_with_base_grant_is_allowed():
    authorizer, _ = authorizer_with(rule(Role.ADMIN, "grids", can_delete=True))
    decision = await authorizer.authorize(
        ctx_for(Role.ADMIN), "grids", Action.DELETE, Ownership(created_by_id=OTHER)
    )
    assert decision.allow


async def test_ownership_is_not_consulted_for_create():
    authorizer, store = authorizer_with(
        rule(Role.USER, "grids", can_create=True),
        rule(Role.USER, "my_resources", can_create=False),
    )
    decision = await authorizer.authorize(ctx_for(Role.USER), "grids", Action.CREATE, Ownership(created_by_id=ACTOR))
    assert decision.allow
    assert store.calls == 1


async def test_acting_role_narrows_decisions():
    authorizer, _ = authorizer_with(
        rule(Role.ADMIN, "grids", can_edit=True),
        rule(Role.USER, "grids", can_view=True),
    )
    acting = build_context(ACTOR, Role.ADMIN, "user")
    resource = Ownership(created_by_id=OTHER)

    assert (await authorizer.authorize(ctx_for(Role.ADMIN), "grids", Action.EDIT, resource)).allow
    assert not (await authorizer.authorize(acting, "grids", Action.EDIT, resource)).allow


async def test_unknown_acting_signal_changes_nothing():
    authorizer, _ = authorizer_with(rule(Role.GRID_MANAGER, "announcements", can_edit=True))
    plain = build_context(ACTOR, Role.GRID_MANAGER, None)
    spoofed = build_context(ACTOR, Role.GRID_MANAGER, "super_admin")

    for action in Action:
        a = await authorizer.authorize(plain, "announcements", action)
        b = await authorizer.authorize(spoofed, "announcements", action)
        assert a == b


async def test_anonymous_mutation_is_unauthenticated():
    authorizer, _ = authorizer_with(rule(Role.GUEST, "grids", can_view=True, can_edit=True))
    anonymous = build_context(None, None, None)

    with pytest.raises(Unauthenticated):
        await authorizer.ensure(anonymous, "grids", Action.EDIT, Ownership())
    assert (await authorizer.ensure(anonymous, "grids", Action.VIEW)).allow


async def test_unconfigured_kind_raises_unconfigured(caplog):
    authorizer, _ = authorizer_with()
    with caplog.at_level("WARNING"), pytest.raises(Unconfigured):
        await authorizer.ensure(ctx_for(Role.ADMIN), "weather_reports", Action.VIEW)
    assert "not configured" in caplog.text


async def test_rejections_look_the_same():
    authorizer, _ = authorizer_with(rule(Role.USER, "grids"))
    errors = []
    for ctx, kind in (
        (build_context(None, None, None), "grids"),
        (ctx_for(Role.USER), "grids"),
        (ctx_for(Role.USER), "weather_reports"),
    ):
        with pytest.raises(AuthorizationError) as info:
            await authorizer.ensure(ctx, kind, Action.EDIT, Ownership(created_by_id=OTHER))
        errors.append(info.value)

    assert {type(e) for e in errors} == {Unauthenticated, Denied, Unconfigured}
    assert {str(e) for e in errors} == {"Forbidden"}
    assert {e.reason for e in errors} == {"unauthenticated", "not_owner", "unconfigured"}


@pytest.mark.parametrize("kind", ["grids", "trash_supplies", "anything_at_all"])
async def test_super_admin_is_never_denied(kind):
    authorizer, store = authorizer_with(rule(Role.SUPER_ADMIN, kind))
    for action in Action:
        decision = await authorizer.ensure(
            ctx_for(Role.SUPER_ADMIN), kind, action, Ownership(created_by_id=OTHER)
        )
        assert decision.allow
    assert store.calls == 0


def test_ownership_of_reads_dicts_and_objects():
    class Row:
        created_by_id = ACTOR
        grid_manager_id = None

    assert ownership_of({"created_by_id": OTHER, "grid_manager_id": ACTOR}).is_owned_by(ACTOR)
    assert ownership_of(Row()).is_owned_by(ACTOR)
    assert ownership_of(Row(), inherited=[OTHER]).is_owned_by(OTHER)
    assert not ownership_of({}).is_owned_by(None)


# ============================================================================
# Cascading deletes
# ============================================================================

def trash_rules(role, volunteers=True, supplies=True, discussions=True):
    return (
        rule(role, "trash_volunteers", can_delete=volunteers),
        rule(role, "trash_supplies", can_delete=supplies),
        rule(role, "trash_discussions", can_delete=discussions),
    )


async def test_cascade_blocked_by_missing_trash_grant():
    authorizer, _ = authorizer_with(*trash_rules(Role.ADMIN, supplies=False))
    dependents = {"volunteer_registrations": 3, "supply_donations": 0, "grid_discussions": 0}

    with pytest.raises(CascadeConflict) as info:
        await authorizer.ensure_cascade(ctx_for(Role.ADMIN), "grids", "01GRID", dependents)

    assert info.value.dependents == {"volunteer_registrations": 3}
    assert info.value.total == 3


async def test_cascade_without_dependents_needs_no_trash_grant():
    authorizer, store = authorizer_with(*trash_rules(Role.USER, False, False, False))
    await authorizer.ensure_cascade(
        ctx_for(Role.USER), "grids", "01GRID",
        {"volunteer_registrations": 0, "supply_donations": 0, "grid_discussions": 0},
    )
    assert store.calls == 0


async def test_cascade_with_every_trash_grant_passes():
    authorizer, _ = authorizer_with(*trash_rules(Role.ADMIN))
    await authorizer.ensure_cascade(
        ctx_for(Role.ADMIN), "grids", "01GRID",
        {"volunteer_registrations": 2, "supply_donations": 1, "grid_discussions": 4},
    )


async def test_cascade_trash_rows_missing_blocks():
    # trash_* kinds have no fallback entry
    authorizer, _ = authorizer_with()
    with pytest.raises(CascadeConflict):
        await authorizer.ensure_cascade(ctx_for(Role.ADMIN), "grids", "01GRID", {"grid_discussions": 1})


async def test_super_admin_cascade_is_never_blocked():
    authorizer, _ = authorizer_with(*trash_rules(Role.SUPER_ADMIN, False, False, False))
    await authorizer.ensure_cascade(
        ctx_for(Role.SUPER_ADMIN), "grids", "01GRID", {"volunteer_registrations": 5}
    )
