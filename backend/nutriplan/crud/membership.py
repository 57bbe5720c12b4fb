# nutriplan/crud/membership.py
from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from nutriplan.core.errors import ConflictError, NotFoundError
from nutriplan.models.membership import Membership
from nutriplan.models.role import Role

logger = logging.getLogger(__name__)


async def find_membership(
    db: AsyncSession,
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    *,
    with_role: bool = False,
    for_update: bool = False,
) -> Optional[Membership]:
    stmt = select(Membership).where(
        Membership.user_id == user_id,
        Membership.tenant_id == tenant_id,
    )
    if with_role:
        stmt = stmt.options(
            selectinload(Membership.role).selectinload(Role.permissions)
        ).execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update()
    return (await db.execute(stmt)).scalar_one_or_none()


async def create_membership(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    role_id: Optional[uuid.UUID] = None,
) -> Membership:
    """
    Add a flushed (uncommitted) membership. One per (user, tenant).
    """
    if await find_membership(db, user_id, tenant_id) is not None:
        raise ConflictError("User is already a member of this tenant")

    membership = Membership(user_id=user_id, tenant_id=tenant_id, role_id=role_id)
    db.add(membership)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race with a concurrent join; the whole unit of work is void.
        await db.rollback()
        raise ConflictError("User is already a member of this tenant") from None
    return membership


async def delete_membership(db: AsyncSession, user_id: uuid.UUID, tenant_id: uuid.UUID) -> None:
    res = await db.execute(
        delete(Membership).where(
            Membership.user_id == user_id,
            Membership.tenant_id == tenant_id,
        )
    )
    if res.rowcount == 0:
        raise NotFoundError("Membership not found")
    await db.commit()
    logger.info("membership removed", extra={"user_id": str(user_id), "tenant_id": str(tenant_id)})
