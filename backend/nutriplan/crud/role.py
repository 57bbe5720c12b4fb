# nutriplan/crud/role.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from nutriplan.core.errors import ConflictError, NotFoundError, ValidationError
from nutriplan.crud.permission import find_permissions_by_ids
from nutriplan.models.membership import Membership
from nutriplan.models.role import Role, role_permissions

logger = logging.getLogger(__name__)


@dataclass
class RoleDetail:
    role: Role
    membership_count: int


def _normalize_role_name(value: Optional[str]) -> str:
    v = " ".join((value or "").strip().split())
    if not v:
        raise ValidationError("Role name is required")
    return v


def _normalize_description(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = value.strip()
    return v or None


async def _name_taken(db: AsyncSession, name: str, *, exclude_id: Optional[uuid.UUID] = None) -> bool:
    stmt = select(Role.id).where(Role.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Role.id != exclude_id)
    return (await db.execute(stmt)).scalar_one_or_none() is not None


async def count_role_memberships(
    db: AsyncSession,
    role_id: uuid.UUID,
    *,
    exclude_tenant_id: Optional[uuid.UUID] = None,
) -> int:
    stmt = select(func.count(Membership.id)).where(Membership.role_id == role_id)
    if exclude_tenant_id is not None:
        stmt = stmt.where(Membership.tenant_id != exclude_tenant_id)
    res = await db.execute(stmt)
    return int(res.scalar() or 0)


async def replace_role_permissions(
    db: AsyncSession,
    role_id: uuid.UUID,
    permission_ids: Sequence[uuid.UUID],
) -> None:
    """
    Make the role's bundle exactly `permission_ids` (replace, never merge).
    Runs inside the caller's transaction; the caller commits.
    """
    await db.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))
    unique_ids = list(dict.fromkeys(permission_ids))
    if unique_ids:
        await db.execute(
            insert(role_permissions),
            [{"role_id": role_id, "permission_id": pid} for pid in unique_ids],
        )


async def create_role(
    db: AsyncSession,
    *,
    name: str,
    description: Optional[str] = None,
    permission_ids: Optional[Sequence[uuid.UUID]] = None,
) -> RoleDetail:
    role_name = _normalize_role_name(name)
    permissions = await find_permissions_by_ids(db, permission_ids or [])

    if await _name_taken(db, role_name):
        raise ConflictError(f"Role '{role_name}' already exists")

    role = Role(
        name=role_name,
        description=_normalize_description(description),
        is_system=False,
        permissions=permissions,
    )
    db.add(role)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Role '{role_name}' already exists") from None

    logger.info("role created", extra={"role": role_name, "permission_count": len(permissions)})
    return await get_role(db, role.id)


async def get_role(db: AsyncSession, role_id: uuid.UUID) -> RoleDetail:
    stmt = (
        select(Role)
        .where(Role.id == role_id)
        .options(selectinload(Role.permissions))
        .execution_options(populate_existing=True)
    )
    role = (await db.execute(stmt)).scalar_one_or_none()
    if role is None:
        raise NotFoundError("Role not found")

    return RoleDetail(role=role, membership_count=await count_role_memberships(db, role.id))


async def get_role_by_name(db: AsyncSession, name: str) -> Optional[Role]:
    res = await db.execute(select(Role).where(Role.name == name))
    return res.scalar_one_or_none()


async def list_roles(db: AsyncSession) -> list[RoleDetail]:
    roles = (
        await db.execute(
            select(Role)
            .options(selectinload(Role.permissions))
            .order_by(Role.name.asc())
            .execution_options(populate_existing=True)
        )
    ).scalars().all()

    counts_stmt = (
        select(Membership.role_id, func.count(Membership.id))
        .where(Membership.role_id.is_not(None))
        .group_by(Membership.role_id)
    )
    counts = {role_id: int(n) for role_id, n in (await db.execute(counts_stmt)).all()}

    return [RoleDetail(role=r, membership_count=counts.get(r.id, 0)) for r in roles]


async def update_role(
    db: AsyncSession,
    role_id: uuid.UUID,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    permission_ids: Optional[Sequence[uuid.UUID]] = None,
    tenant_id: Optional[uuid.UUID] = None,
) -> RoleDetail:
    """
    Partial update of a user-defined role. A supplied `permission_ids`
    replaces the whole bundle; an empty list clears it.

    System roles are shared by every tenant and only change through the
    bootstrapper. With `tenant_id` set, the role must not be assigned to any
    membership outside that tenant.
    """
    role = (
        await db.execute(select(Role).where(Role.id == role_id).with_for_update())
    ).scalar_one_or_none()
    if role is None:
        raise NotFoundError("Role not found")

    if role.is_system:
        raise ConflictError("Cannot modify system roles")

    if tenant_id is not None:
        foreign = await count_role_memberships(db, role.id, exclude_tenant_id=tenant_id)
        if foreign > 0:
            raise ConflictError(f"Role is assigned to {foreign} membership(s) in other tenants")

    if name is not None:
        new_name = _normalize_role_name(name)
        if new_name != role.name:
            if await _name_taken(db, new_name, exclude_id=role.id):
                raise ConflictError(f"Role '{new_name}' already exists")
            role.name = new_name

    if description is not None:
        role.description = _normalize_description(description)

    if permission_ids is not None:
        permissions = await find_permissions_by_ids(db, permission_ids)
        await replace_role_permissions(db, role.id, [p.id for p in permissions])

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("Role update violates a uniqueness constraint") from None

    logger.info("role updated", extra={"role_id": str(role_id)})
    return await get_role(db, role_id)


async def delete_role(db: AsyncSession, role_id: uuid.UUID) -> None:
    """
    Delete a user-defined role that no membership references.
    Role-permission links go with it; permissions are untouched.
    """
    role = (
        await db.execute(select(Role).where(Role.id == role_id).with_for_update())
    ).scalar_one_or_none()
    if role is None:
        raise NotFoundError("Role not found")

    if role.is_system:
        raise ConflictError("Cannot delete system roles")

    membership_count = await count_role_memberships(db, role_id)
    if membership_count > 0:
        raise ConflictError(f"Cannot delete role that is assigned to {membership_count} membership(s)")

    role_name = role.name
    await db.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))
    await db.execute(delete(Role).where(Role.id == role_id))
    try:
        await db.commit()
    except IntegrityError:
        # A membership picked up the role between the count and the delete.
        await db.rollback()
        raise ConflictError("Cannot delete role that is assigned to users") from None

    logger.info("role deleted", extra={"role": role_name})
