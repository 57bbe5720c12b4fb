"""
Seeds the canonical permission catalog and the four system roles.

Safe to run on every start and from several processes at once: rows are
inserted with ON CONFLICT DO NOTHING against the unique `name` columns, and
system-role link sets are rewritten under a row lock. The whole run is one
transaction; on any failure nothing is committed and the error propagates.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Sequence

from sqlalchemy import Table, insert, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from nutriplan.crud.role import replace_role_permissions
from nutriplan.models.permission import Permission
from nutriplan.models.role import Role
from nutriplan.rbac.catalog import CATALOG_NAMES, PERMISSION_CATALOG, SYSTEM_ROLE_NAMES, SYSTEM_ROLES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BootstrapResult:
    permissions_created: int
    roles_created: int
    permissions_total: int
    roles_total: int


async def _insert_missing(db: AsyncSession, table: Table, rows: Sequence[dict[str, Any]]) -> int:
    """
    Insert rows whose `name` is not taken yet; return how many were inserted.
    Existing rows are left untouched.
    """
    bind = db.get_bind()
    dialect = bind.dialect.name if bind is not None else ""

    if dialect == "postgresql":
        stmt = (
            pg_insert(table)
            .values(list(rows))
            .on_conflict_do_nothing(index_elements=[table.c.name])
            .returning(table.c.id)
        )
        return len((await db.execute(stmt)).all())

    if dialect == "sqlite":
        stmt = (
            sqlite_insert(table)
            .values(list(rows))
            .on_conflict_do_nothing(index_elements=[table.c.name])
        )
        return (await db.execute(stmt)).rowcount

    created = 0
    for row in rows:
        try:
            async with db.begin_nested():
                await db.execute(insert(table).values(**row))
        except IntegrityError:
            # Another process inserted the same name first.
            continue
        created += 1
    return created


async def initialize_system_roles(db: AsyncSession) -> BootstrapResult:
    try:
        result = await _initialize(db)
        await db.commit()
    except Exception:
        await db.rollback()
        logger.exception("RBAC bootstrap failed; nothing was committed")
        raise

    logger.info(
        "RBAC bootstrap complete",
        extra={
            "permissions_created": result.permissions_created,
            "roles_created": result.roles_created,
        },
    )
    return result


async def _initialize(db: AsyncSession) -> BootstrapResult:
    # 1) permission catalog
    permissions_created = await _insert_missing(
        db,
        Permission.__table__,
        [
            {
                "id": uuid.uuid4(),
                "name": p.name,
                "resource": p.resource,
                "action": p.action,
                "description": p.description,
            }
            for p in PERMISSION_CATALOG
        ],
    )

    ids_by_name: dict[str, uuid.UUID] = dict(
        (await db.execute(select(Permission.name, Permission.id).where(Permission.name.in_(CATALOG_NAMES)))).all()
    )
    missing = CATALOG_NAMES - ids_by_name.keys()
    if missing:
        raise RuntimeError(f"Permission catalog incomplete after upsert: {sorted(missing)}")

    # 2) system roles
    roles_created = await _insert_missing(
        db,
        Role.__table__,
        [
            {
                "id": uuid.uuid4(),
                "name": role_def.name,
                "description": role_def.description,
                "is_system": True,
            }
            for role_def in SYSTEM_ROLES.values()
        ],
    )

    # Lock the system roles so concurrent bootstraps rewrite links one at a time.
    roles = {
        role.name: role
        for role in (
            await db.execute(
                select(Role)
                .where(Role.name.in_(SYSTEM_ROLE_NAMES))
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalars()
    }

    # 3) reconcile flags and bundles with the code-level definitions
    for role_def in SYSTEM_ROLES.values():
        role = roles.get(role_def.name)
        if role is None:
            raise RuntimeError(f"System role {role_def.name!r} missing after upsert")
        role.is_system = True
        role.description = role_def.description
        await replace_role_permissions(db, role.id, [ids_by_name[n] for n in sorted(role_def.permissions)])

    await db.flush()

    return BootstrapResult(
        permissions_created=permissions_created,
        roles_created=roles_created,
        permissions_total=len(ids_by_name),
        roles_total=len(roles),
    )
