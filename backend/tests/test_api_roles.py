# tests/test_api_roles.py
from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select

from conftest import add_membership, auth_headers, create_tenant, create_user
from nutriplan.core.config import settings
from nutriplan.crud.role import create_role, get_role_by_name
from nutriplan.models.permission import Permission
from nutriplan.rbac.catalog import CATALOG_NAMES, SYSTEM_ROLES


async def member_with_role(db, role_name: str):
    role = await get_role_by_name(db, role_name)
    user = await create_user(db)
    tenant = await create_tenant(db)
    await add_membership(db, user.id, tenant.id, role_id=role.id)
    await db.commit()
    return user, tenant


@pytest.mark.asyncio
async def test_guarded_route_without_context_is_forbidden(client, db, seeded):
    r = await client.get("/api/v1/roles")

    assert r.status_code == 403
    assert r.json()["detail"] == "User ID and Tenant ID are required"


@pytest.mark.asyncio
async def test_bad_token_is_unauthorized(client, db, seeded):
    r = await client.get(
        "/api/v1/roles",
        params={"tenant_id": str(uuid.uuid4())},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_viewer_cannot_list_roles(client, db, seeded):
    user, tenant = await member_with_role(db, "viewer")

    r = await client.get("/api/v1/roles", params={"tenant_id": str(tenant.id)}, headers=auth_headers(user))

    assert r.status_code == 403
    assert r.json()["detail"] == "Insufficient permissions: role:read"


@pytest.mark.asyncio
async def test_admin_lists_roles_and_permissions(client, db, seeded):
    user, tenant = await member_with_role(db, "admin")
    headers = auth_headers(user)

    r = await client.get("/api/v1/roles", params={"tenant_id": str(tenant.id)}, headers=headers)
    assert r.status_code == 200
    roles = {row["name"]: row for row in r.json()}
    assert set(roles) == set(SYSTEM_ROLES)
    assert roles["admin"]["is_system"] is True
    assert roles["admin"]["membership_count"] == 1
    assert len(roles["admin"]["permissions"]) == len(CATALOG_NAMES)

    r = await client.get(
        "/api/v1/roles/permissions",
        params={"tenant_id": str(tenant.id), "resource": "recipe"},
        headers=headers,
    )
    assert r.status_code == 200
    assert [p["name"] for p in r.json()] == ["recipe:create", "recipe:delete", "recipe:read", "recipe:update"]


@pytest.mark.asyncio
async def test_admin_manages_custom_role(client, db, seeded):
    user, tenant = await member_with_role(db, "admin")
    headers = auth_headers(user)
    recipe_read = (await db.execute(select(Permission.id).where(Permission.name == "recipe:read"))).scalar_one()

    r = await client.post(
        "/api/v1/roles",
        json={"tenant_id": str(tenant.id), "name": "taster", "permission_ids": [str(recipe_read)]},
        headers=headers,
    )
    assert r.status_code == 201, r.text
    role = r.json()
    assert role["is_system"] is False
    assert [p["name"] for p in role["permissions"]] == ["recipe:read"]

    r = await client.put(
        f"/api/v1/roles/{role['id']}",
        json={"tenant_id": str(tenant.id), "permission_ids": []},
        headers=headers,
    )
    assert r.status_code == 200
    assert r.json()["permissions"] == []

    r = await client.delete(f"/api/v1/roles/{role['id']}", params={"tenant_id": str(tenant.id)}, headers=headers)
    assert r.status_code == 204

    r = await client.get(f"/api/v1/roles/{role['id']}", params={"tenant_id": str(tenant.id)}, headers=headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_system_role_delete_is_conflict(client, db, seeded):
    user, tenant = await member_with_role(db, "admin")
    viewer = await get_role_by_name(db, "viewer")

    r = await client.delete(
        f"/api/v1/roles/{viewer.id}",
        params={"tenant_id": str(tenant.id)},
        headers=auth_headers(user),
    )

    assert r.status_code == 409
    assert r.json()["detail"] == "Cannot delete system roles"


@pytest.mark.asyncio
async def test_unknown_permission_id_is_bad_request(client, db, seeded):
    user, tenant = await member_with_role(db, "admin")

    r = await client.post(
        "/api/v1/roles",
        json={"tenant_id": str(tenant.id), "name": "ghost", "permission_ids": [str(uuid.uuid4())]},
        headers=auth_headers(user),
    )

    assert r.status_code == 400
    assert r.json()["detail"].startswith("Unknown permission id(s)")


@pytest.mark.asyncio
async def test_assign_role_and_check_permission(client, db, seeded):
    admin_user, tenant = await member_with_role(db, "admin")
    headers = auth_headers(admin_user)
    member_role = await get_role_by_name(db, "member")
    other = await create_user(db)
    await add_membership(db, other.id, tenant.id)
    await db.commit()

    base = f"/api/v1/roles/user/{other.id}/tenant/{tenant.id}"

    r = await client.post(f"{base}/role/{member_role.id}", headers=headers)
    assert r.status_code == 200
    assert r.json()["role"]["name"] == "member"

    r = await client.get(f"{base}/check-permission", params={"resource": "recipe", "action": "create"}, headers=headers)
    assert r.status_code == 200
    assert r.json() == {"has_permission": True}

    r = await client.get(f"{base}/permissions", headers=headers)
    assert r.json()["permissions"] == sorted(SYSTEM_ROLES["member"].permissions)

    r = await client.delete(f"{base}/role", headers=headers)
    assert r.status_code == 200
    assert r.json()["role_id"] is None

    r = await client.get(f"{base}/check-permission", params={"resource": "recipe", "action": "create"}, headers=headers)
    assert r.json() == {"has_permission": False}


@pytest.mark.asyncio
async def test_initialize_requires_operator_key(client, db, monkeypatch):
    monkeypatch.setattr(settings, "RBAC_OPERATOR_KEY", None)
    r = await client.post("/api/v1/roles/initialize")
    assert r.status_code == 403

    monkeypatch.setattr(settings, "RBAC_OPERATOR_KEY", "op-secret")
    r = await client.post("/api/v1/roles/initialize", headers={"X-Operator-Key": "wrong"})
    assert r.status_code == 403
    assert r.json()["detail"] == "Invalid operator key"

    r = await client.post("/api/v1/roles/initialize", headers={"X-Operator-Key": "op-secret"})
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "System roles and permissions initialized successfully"
    assert body["permissions_created"] == len(CATALOG_NAMES)
    assert body["roles_created"] == 4

    r = await client.post("/api/v1/roles/initialize", headers={"X-Operator-Key": "op-secret"})
    assert r.json()["permissions_created"] == 0
    assert r.json()["roles_total"] == 4


@pytest.mark.asyncio
async def test_own_tenant_admin_cannot_widen_system_roles_elsewhere(client, db, seeded):
    victim, victim_tenant = await member_with_role(db, "viewer")
    attacker = await create_user(db)
    await db.commit()
    headers = auth_headers(attacker)

    r = await client.post("/api/v1/tenants", json={"name": "Attacker household"}, headers=headers)
    assert r.status_code == 201
    own_tenant = r.json()["id"]

    viewer = await get_role_by_name(db, "viewer")
    every_id = [str(pid) for pid in (await db.execute(select(Permission.id))).scalars().all()]

    r = await client.put(
        f"/api/v1/roles/{viewer.id}",
        params={"tenant_id": own_tenant},
        json={"permission_ids": every_id},
        headers=headers,
    )
    assert r.status_code == 409
    assert r.json()["detail"] == "Cannot modify system roles"

    r = await client.get(f"/api/v1/tenants/{victim_tenant.id}/me/permissions", headers=auth_headers(victim))
    assert r.json()["permissions"] == sorted(SYSTEM_ROLES["viewer"].permissions)
    assert "recipe:delete" not in r.json()["permissions"]


@pytest.mark.asyncio
async def test_own_tenant_admin_cannot_edit_role_used_by_another_tenant(client, db, seeded):
    attacker, own_tenant = await member_with_role(db, "admin")
    recipe_delete = (await db.execute(select(Permission.id).where(Permission.name == "recipe:delete"))).scalar_one()
    taster = await create_role(db, name="taster")
    victim = await create_user(db)
    victim_tenant = await create_tenant(db)
    await add_membership(db, victim.id, victim_tenant.id, role_id=taster.role.id)
    await db.commit()

    r = await client.put(
        f"/api/v1/roles/{taster.role.id}",
        json={"tenant_id": str(own_tenant.id), "permission_ids": [str(recipe_delete)]},
        headers=auth_headers(attacker),
    )

    assert r.status_code == 409
    r = await client.get(f"/api/v1/tenants/{victim_tenant.id}/me/permissions", headers=auth_headers(victim))
    assert r.json()["permissions"] == []


@pytest.mark.asyncio
async def test_permission_catalog_writes_need_operator_key(client, db, seeded, monkeypatch):
    monkeypatch.setattr(settings, "RBAC_OPERATOR_KEY", "op-secret")
    user, tenant = await member_with_role(db, "admin")
    payload = {"name": "pantry:read", "resource": "pantry", "action": "read"}

    r = await client.post(
        "/api/v1/roles/permissions",
        params={"tenant_id": str(tenant.id)},
        json=payload,
        headers=auth_headers(user),
    )
    assert r.status_code == 403

    r = await client.post("/api/v1/roles/permissions", json=payload, headers={"X-Operator-Key": "op-secret"})
    assert r.status_code == 201, r.text
    permission_id = r.json()["id"]

    r = await client.delete(
        f"/api/v1/roles/permissions/{permission_id}",
        params={"tenant_id": str(tenant.id)},
        headers=auth_headers(user),
    )
    assert r.status_code == 403

    r = await client.delete(f"/api/v1/roles/permissions/{permission_id}", headers={"X-Operator-Key": "op-secret"})
    assert r.status_code == 204
