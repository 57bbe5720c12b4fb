"""
Authorization resolver.

The effective permission set of a (user, tenant) pair is whatever the role on
that membership grants right now. Nothing is cached: every call reads the
store, so a revoked role takes effect on the next guarded request.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from nutriplan.core.errors import NotFoundError
from nutriplan.crud.membership import find_membership
from nutriplan.models.membership import Membership
from nutriplan.models.permission import Permission
from nutriplan.models.role import Role, role_permissions
from nutriplan.rbac.catalog import permission_name

logger = logging.getLogger(__name__)


async def get_user_permissions(db: AsyncSession, user_id: uuid.UUID, tenant_id: uuid.UUID) -> set[str]:
    """
    One joined SELECT over membership -> role links -> permissions, so the
    answer never mixes two versions of the role's bundle.
    No membership, no role, or an empty bundle all yield an empty set.
    """
    stmt = (
        select(Permission.resource, Permission.action)
        .join(role_permissions, role_permissions.c.permission_id == Permission.id)
        .join(Membership, Membership.role_id == role_permissions.c.role_id)
        .where(Membership.user_id == user_id)
        .where(Membership.tenant_id == tenant_id)
    )
    rows = (await db.execute(stmt)).all()
    return {permission_name(resource, action) for resource, action in rows}


async def has_permission(
    db: AsyncSession,
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    resource: str,
    action: str,
) -> bool:
    return permission_name(resource, action) in await get_user_permissions(db, user_id, tenant_id)


async def assign_role_to_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    role_id: uuid.UUID,
) -> Membership:
    """
    Set (or overwrite) the role on an existing membership.
    Returns the membership with its role and the role's permissions loaded.
    """
    if await db.get(Role, role_id) is None:
        raise NotFoundError("Role not found")

    membership = await find_membership(db, user_id, tenant_id, for_update=True)
    if membership is None:
        raise NotFoundError("Membership not found")

    membership.role_id = role_id
    try:
        await db.commit()
    except IntegrityError:
        # Role deleted between the existence check and the update.
        await db.rollback()
        raise NotFoundError("Role not found") from None

    logger.info(
        "role assigned",
        extra={"user_id": str(user_id), "tenant_id": str(tenant_id), "role_id": str(role_id)},
    )
    return await find_membership(db, user_id, tenant_id, with_role=True)


async def remove_role_from_user(db: AsyncSession, user_id: uuid.UUID, tenant_id: uuid.UUID) -> Membership:
    """
    Clear the membership's role. Calling it on a role-less membership is a no-op.
    """
    membership = await find_membership(db, user_id, tenant_id, for_update=True)
    if membership is None:
        raise NotFoundError("Membership not found")

    if membership.role_id is not None:
        membership.role_id = None
        await db.commit()
        logger.info("role removed", extra={"user_id": str(user_id), "tenant_id": str(tenant_id)})

    return await find_membership(db, user_id, tenant_id, with_role=True)
