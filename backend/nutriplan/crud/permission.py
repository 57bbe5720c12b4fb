# nutriplan/crud/permission.py
from __future__ import annotations

import logging
import uuid
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from nutriplan.core.errors import ConflictError, NotFoundError, ValidationError
from nutriplan.models.permission import Permission
from nutriplan.models.role import role_permissions
from nutriplan.rbac.catalog import permission_name

logger = logging.getLogger(__name__)


def _required_text(value: Optional[str], field: str) -> str:
    v = (value or "").strip()
    if not v:
        raise ValidationError(f"{field} is required")
    if ":" in v and field != "name":
        raise ValidationError(f"{field} must not contain ':'")
    return v


def _normalize_description(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    v = value.strip()
    return v or None


async def create_permission(
    db: AsyncSession,
    *,
    name: str,
    resource: str,
    action: str,
    description: Optional[str] = None,
) -> Permission:
    """
    Create one catalog entry. Duplicate names are a ConflictError here;
    the bootstrapper uses its own insert-or-ignore path instead.
    """
    resource = _required_text(resource, "resource")
    action = _required_text(action, "action")
    name = _required_text(name, "name")
    if name != permission_name(resource, action):
        raise ValidationError(f"Permission name must be '{permission_name(resource, action)}', got '{name}'")

    existing = (await db.execute(select(Permission.id).where(Permission.name == name))).scalar_one_or_none()
    if existing is not None:
        raise ConflictError(f"Permission '{name}' already exists")

    permission = Permission(
        name=name,
        resource=resource,
        action=action,
        description=_normalize_description(description),
    )
    db.add(permission)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same name.
        await db.rollback()
        raise ConflictError(f"Permission '{name}' already exists") from None

    await db.refresh(permission)
    logger.info("permission created", extra={"permission": name})
    return permission


async def list_permissions(db: AsyncSession, resource: Optional[str] = None) -> Sequence[Permission]:
    stmt = select(Permission).order_by(Permission.resource.asc(), Permission.action.asc())
    if resource:
        stmt = stmt.where(Permission.resource == resource.strip())
    res = await db.execute(stmt)
    return res.scalars().all()


async def get_permission(db: AsyncSession, permission_id: uuid.UUID) -> Permission:
    permission = await db.get(Permission, permission_id)
    if permission is None:
        raise NotFoundError("Permission not found")
    return permission


async def find_permissions_by_ids(db: AsyncSession, permission_ids: Sequence[uuid.UUID]) -> list[Permission]:
    """
    Resolve ids to rows, rejecting any id that does not exist.
    """
    wanted = list(dict.fromkeys(permission_ids))
    if not wanted:
        return []

    res = await db.execute(select(Permission).where(Permission.id.in_(wanted)))
    found = {p.id: p for p in res.scalars().all()}
    missing = [str(pid) for pid in wanted if pid not in found]
    if missing:
        raise ValidationError(f"Unknown permission id(s): {', '.join(missing)}")
    return [found[pid] for pid in wanted]


async def count_roles_using_permission(db: AsyncSession, permission_id: uuid.UUID) -> int:
    stmt = (
        select(func.count())
        .select_from(role_permissions)
        .where(role_permissions.c.permission_id == permission_id)
    )
    res = await db.execute(stmt)
    return int(res.scalar() or 0)


async def delete_permission(db: AsyncSession, permission_id: uuid.UUID) -> None:
    """
    Delete an unreferenced permission.

    The permission row is locked for the in-use check; a grant racing this
    delete either waits on the lock or trips the RESTRICT foreign key.
    """
    permission = (
        await db.execute(
            select(Permission)
            .where(Permission.id == permission_id)
            .with_for_update()
        )
    ).scalar_one_or_none()
    if permission is None:
        raise NotFoundError("Permission not found")

    role_count = await count_roles_using_permission(db, permission_id)
    if role_count > 0:
        raise ConflictError(f"Permission in use: '{permission.name}' is assigned to {role_count} role(s)")

    name = permission.name
    await db.delete(permission)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Permission in use: '{name}' was assigned to a role concurrently") from None

    logger.info("permission deleted", extra={"permission": name})
