# nutriplan/crud/tenant.py
from __future__ import annotations

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from nutriplan.core.errors import NotFoundError, ValidationError
from nutriplan.crud.membership import create_membership, find_membership
from nutriplan.crud.role import get_role, get_role_by_name
from nutriplan.models.membership import Membership
from nutriplan.models.tenant import Tenant
from nutriplan.models.user import User
from nutriplan.rbac.catalog import ROLE_ADMIN

logger = logging.getLogger(__name__)


async def create_tenant(db: AsyncSession, *, name: str, owner: User) -> Tenant:
    """
    Create a household and make `owner` its first member.

    The owner gets the `admin` system role when the catalog has been
    bootstrapped; otherwise the membership starts without a role.
    """
    tenant_name = " ".join((name or "").strip().split())
    if not tenant_name:
        raise ValidationError("Tenant name is required")

    tenant = Tenant(name=tenant_name, is_active=True)
    db.add(tenant)
    await db.flush()

    admin_role = await get_role_by_name(db, ROLE_ADMIN)
    if admin_role is None:
        logger.warning("admin role missing; tenant creator gets no role", extra={"tenant_id": str(tenant.id)})

    await create_membership(
        db,
        user_id=owner.id,
        tenant_id=tenant.id,
        role_id=admin_role.id if admin_role else None,
    )
    await db.commit()
    await db.refresh(tenant)

    logger.info("tenant created", extra={"tenant_id": str(tenant.id), "user_id": str(owner.id)})
    return tenant


async def list_user_tenants(db: AsyncSession, user_id: uuid.UUID) -> Sequence[Tenant]:
    stmt = (
        select(Tenant)
        .join(Membership, Membership.tenant_id == Tenant.id)
        .where(Membership.user_id == user_id)
        .where(Tenant.is_active.is_(True))
        .order_by(Tenant.created_at.desc(), Tenant.name.asc())
    )
    res = await db.execute(stmt)
    return res.scalars().unique().all()


async def add_member(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    *,
    email: str,
    role_id: Optional[uuid.UUID] = None,
) -> Membership:
    """
    Add an existing user (looked up by email) to the tenant, optionally with a role.
    """
    tenant = await db.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found")

    user = (
        await db.execute(select(User).where(User.email == User.normalize_email(email)))
    ).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")

    if role_id is not None:
        await get_role(db, role_id)  # NotFoundError if absent

    await create_membership(db, user_id=user.id, tenant_id=tenant.id, role_id=role_id)
    await db.commit()

    logger.info("member added", extra={"tenant_id": str(tenant_id), "user_id": str(user.id)})
    return await find_membership(db, user.id, tenant.id, with_role=True)
