# tests/test_bootstrap.py
from __future__ import annotations

import pytest
from sqlalchemy import delete, func, insert, select, update

from nutriplan.crud.permission import create_permission
from nutriplan.models.permission import Permission
from nutriplan.models.role import Role, role_permissions
from nutriplan.rbac import bootstrap
from nutriplan.rbac.bootstrap import initialize_system_roles
from nutriplan.rbac.catalog import CATALOG_NAMES, SYSTEM_ROLES


async def count(db, table) -> int:
    return int((await db.execute(select(func.count()).select_from(table))).scalar() or 0)


async def role_bundle(db, role_name: str) -> set[str]:
    stmt = (
        select(Permission.name)
        .join(role_permissions, role_permissions.c.permission_id == Permission.id)
        .join(Role, Role.id == role_permissions.c.role_id)
        .where(Role.name == role_name)
    )
    return set((await db.execute(stmt)).scalars().all())


def expected_links() -> int:
    return sum(len(r.permissions) for r in SYSTEM_ROLES.values())


@pytest.mark.asyncio
async def test_first_run_creates_catalog_and_system_roles(db):
    result = await initialize_system_roles(db)

    assert result.permissions_created == len(CATALOG_NAMES)
    assert result.roles_created == 4
    assert result.permissions_total == len(CATALOG_NAMES)
    assert result.roles_total == 4

    system = (await db.execute(select(Role.name).where(Role.is_system.is_(True)))).scalars().all()
    assert sorted(system) == ["admin", "manager", "member", "viewer"]

    assert await role_bundle(db, "admin") == set(CATALOG_NAMES)
    for name, role_def in SYSTEM_ROLES.items():
        assert await role_bundle(db, name) == set(role_def.permissions)


@pytest.mark.asyncio
async def test_second_run_changes_nothing(db):
    await initialize_system_roles(db)
    before = (
        await count(db, Permission.__table__),
        await count(db, Role.__table__),
        await count(db, role_permissions),
    )

    result = await initialize_system_roles(db)

    assert result.permissions_created == 0
    assert result.roles_created == 0
    after = (
        await count(db, Permission.__table__),
        await count(db, Role.__table__),
        await count(db, role_permissions),
    )
    assert before == after == (len(CATALOG_NAMES), 4, expected_links())
    assert await role_bundle(db, "admin") == set(CATALOG_NAMES)


@pytest.mark.asyncio
async def test_existing_permissions_are_left_untouched(db):
    await create_permission(db, name="recipe:read", resource="recipe", action="read", description="Custom text")
    await create_permission(db, name="pantry:read", resource="pantry", action="read")

    result = await initialize_system_roles(db)

    assert result.permissions_created == len(CATALOG_NAMES) - 1
    description = (
        await db.execute(select(Permission.description).where(Permission.name == "recipe:read"))
    ).scalar_one()
    assert description == "Custom text"
    # user-defined entries survive and never end up in system bundles
    assert await count(db, Permission.__table__) == len(CATALOG_NAMES) + 1
    assert "pantry:read" not in await role_bundle(db, "admin")


@pytest.mark.asyncio
async def test_rerun_restores_tampered_system_roles(db):
    await initialize_system_roles(db)

    viewer_id = (await db.execute(select(Role.id).where(Role.name == "viewer"))).scalar_one()
    extra_id = (await db.execute(select(Permission.id).where(Permission.name == "role:delete"))).scalar_one()
    await db.execute(delete(role_permissions).where(role_permissions.c.role_id == viewer_id))
    await db.execute(insert(role_permissions).values(role_id=viewer_id, permission_id=extra_id))
    await db.execute(
        update(Role).where(Role.id == viewer_id).values(is_system=False, description="tampered")
    )
    await db.commit()

    await initialize_system_roles(db)

    assert await role_bundle(db, "viewer") == set(SYSTEM_ROLES["viewer"].permissions)
    is_system, description = (
        await db.execute(select(Role.is_system, Role.description).where(Role.id == viewer_id))
    ).one()
    assert is_system is True
    assert description == SYSTEM_ROLES["viewer"].description


@pytest.mark.asyncio
async def test_failure_commits_nothing(db, monkeypatch):
    calls = {"n": 0}
    original = bootstrap.replace_role_permissions

    async def flaky(db_, role_id, permission_ids):
        calls["n"] += 1
        if calls["n"] == 2:
            raise RuntimeError("boom")
        await original(db_, role_id, permission_ids)

    monkeypatch.setattr(bootstrap, "replace_role_permissions", flaky)

    with pytest.raises(RuntimeError, match="boom"):
        await initialize_system_roles(db)

    assert await count(db, Permission.__table__) == 0
    assert await count(db, Role.__table__) == 0
    assert await count(db, role_permissions) == 0
