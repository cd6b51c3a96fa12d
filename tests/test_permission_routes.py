from sqlalchemy import select

from app.features.grids.models import Grid
from app.features.permissions.constants import Role
from app.features.permissions.defaults import DEFAULT_PERMISSIONS
from app.features.permissions.models import AuditLog, RolePermission


async def rule_id(session_factory, role, key):
    async with session_factory() as session:
        result = await session.execute(
            select(RolePermission.id).where(RolePermission.role == role, RolePermission.permission_key == key)
        )
        return result.scalar_one()


async def test_for_role_is_public(client, users):
    response = await client.get("/permissions/for-role", params={"role": "guest"})

    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "guest"
    assert body["degraded"] is False
    assert body["permissions"]["grids"] == {
        "view": True, "create": False, "edit": False, "delete": False, "manage": False,
    }


async def test_for_unknown_role_is_400(client, users):
    assert (await client.get("/permissions/for-role", params={"role": "root"})).status_code == 400


async def test_me_reports_effective_role(client, users, auth):
    response = await client.get("/permissions/me", headers=auth(users["admin"], "user"))
    body = response.json()
    assert body["role"] == "user"
    assert body["actual_role"] == "admin"
    assert body["is_acting"] is True
    assert body["permissions"]["role_permissions"]["view"] is False


async def test_check_goes_through_the_resolver(client, users, auth):
    user = auth(users["user"])
    edit = (await client.get("/permissions/check", params={"permission_key": "grids", "action": "edit"}, headers=user)).json()
    create = (await client.get("/permissions/check", params={"permission_key": "grids", "action": "create"}, headers=user)).json()
    unknown = (await client.get("/permissions/check", params={"permission_key": "nope", "action": "view"}, headers=user)).json()

    assert edit == {"has_permission": False, "source": "store", "reason": "denied"}
    assert create["has_permission"] is True
    assert unknown == {"has_permission": False, "source": "fallback", "reason": "unconfigured"}


async def test_listing_the_matrix_needs_role_permissions_view(client, users, auth):
    assert (await client.get("/permissions", headers=auth(users["user"]))).status_code == 403

    response = await client.get("/permissions", headers=auth(users["admin"]))
    assert response.status_code == 200
    assert len(response.json()) == len(DEFAULT_PERMISSIONS)

    by_role = await client.get("/permissions/role/grid_manager", headers=auth(users["admin"]))
    assert {row["role"] for row in by_role.json()} == {"grid_manager"}


async def test_patch_applies_to_the_next_request(client, users, auth, session_factory):
    async with session_factory() as session:
        grid = Grid(code="P-1", created_by_id=users["other"].id)
        session.add(grid)
        await session.commit()

    user = auth(users["user"])
    assert (await client.patch(f"/grids/{grid.id}", json={"volunteer_needed": 1}, headers=user)).status_code == 403

    grids_rule = await rule_id(session_factory, Role.USER, "grids")
    changed = await client.patch(f"/permissions/{grids_rule}", json={"can_edit": True}, headers=auth(users["admin"]))
    assert changed.status_code == 200
    assert changed.json()["can_edit"] is True
    assert changed.json()["can_view"] is True

    assert (await client.patch(f"/grids/{grid.id}", json={"volunteer_needed": 1}, headers=user)).status_code == 200

    async with session_factory() as session:
        entry = (await session.execute(select(AuditLog).where(AuditLog.resource_id == grids_rule))).scalar_one()
    assert entry.details["changes"] == {"can_edit": {"old": False, "new": True}}


async def test_user_cannot_edit_the_matrix(client, users, auth, session_factory):
    rid = await rule_id(session_factory, Role.USER, "grids")
    response = await client.patch(f"/permissions/{rid}", json={"can_edit": True}, headers=auth(users["user"]))
    assert response.status_code == 403


async def test_batch_update_needs_manage(client, users, auth, session_factory):
    ids = [
        await rule_id(session_factory, Role.GUEST, "announcements"),
        await rule_id(session_factory, Role.GUEST, "grids"),
    ]
    body = {"updates": [{"id": ids[0], "can_view": False}, {"id": ids[1], "can_create": True}]}

    assert (await client.post("/permissions/batch-update", json=body, headers=auth(users["admin"]))).status_code == 403

    response = await client.post("/permissions/batch-update", json=body, headers=auth(users["super_admin"]))
    assert response.status_code == 200
    assert response.json()["updated"] == 2
    flags = {row["permission_key"]: row for row in response.json()["permissions"]}
    assert flags["announcements"]["can_view"] is False
    assert flags["grids"]["can_create"] is True


async def test_batch_update_with_unknown_id_changes_nothing(client, users, auth, session_factory):
    rid = await rule_id(session_factory, Role.GUEST, "grids")
    body = {"updates": [{"id": rid, "can_create": True}, {"id": "missing", "can_view": True}]}

    response = await client.post("/permissions/batch-update", json=body, headers=auth(users["super_admin"]))

    assert response.status_code == 404
    async with session_factory() as session:
        assert (await session.get(RolePermission, rid)).can_create is False


async def test_audit_logs_for_admins_only(client, users, auth, session_factory):
    rid = await rule_id(session_factory, Role.GUEST, "grids")
    await client.patch(f"/permissions/{rid}", json={"can_view": False}, headers=auth(users["admin"]))

    assert (await client.get("/permissions/audit-logs", headers=auth(users["grid_manager"]))).status_code == 403

    response = await client.get("/permissions/audit-logs", headers=auth(users["admin"]))
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["items"][0]["resource_type"] == "role_permissions"
    assert body["items"][0]["effective_role"] == "admin"
