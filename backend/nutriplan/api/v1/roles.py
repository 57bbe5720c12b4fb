# nutriplan/api/v1/roles.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from nutriplan.api.deps.permissions import (
    enforce_permissions,
    get_guarded_tenant_id,
    require_operator_key,
)
from nutriplan.crud import permission as permission_crud
from nutriplan.crud import role as role_crud
from nutriplan.db.session import get_db
from nutriplan.rbac import resolver
from nutriplan.rbac.bootstrap import initialize_system_roles
from nutriplan.schemas.rbac import (
    BootstrapOut,
    MembershipOut,
    PermissionCheckOut,
    PermissionCreate,
    PermissionOut,
    RoleCreate,
    RoleOut,
    RoleUpdate,
    UserPermissionsOut,
)

# Every route here is checked against OPERATION_PERMISSIONS by route name.
# Role/permission objects are global; the permission is checked in the tenant
# named by `tenant_id` (query string or JSON body). Catalog-wide writes take
# the operator key instead.
router = APIRouter(prefix="/roles", tags=["roles"], dependencies=[Depends(enforce_permissions)])


# ---------------------------------------------------------
# Catalog bootstrap (operator only)
# ---------------------------------------------------------
@router.post(
    "/initialize",
    name="roles.initialize",
    response_model=BootstrapOut,
    dependencies=[Depends(require_operator_key)],
)
async def initialize_roles(db: AsyncSession = Depends(get_db)):
    result = await initialize_system_roles(db)
    return BootstrapOut(
        message="System roles and permissions initialized successfully",
        permissions_created=result.permissions_created,
        roles_created=result.roles_created,
        permissions_total=result.permissions_total,
        roles_total=result.roles_total,
    )


# ---------------------------------------------------------
# Permissions (declared before /{role_id} so the paths don't collide)
# ---------------------------------------------------------
@router.post(
    "/permissions",
    name="permissions.create",
    response_model=PermissionOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_operator_key)],
)
async def create_permission(payload: PermissionCreate, db: AsyncSession = Depends(get_db)):
    return await permission_crud.create_permission(
        db,
        name=payload.name,
        resource=payload.resource,
        action=payload.action,
        description=payload.description,
    )


@router.get("/permissions", name="permissions.list", response_model=List[PermissionOut])
async def list_permissions(
    resource: Optional[str] = Query(default=None, description="Only permissions on this resource"),
    db: AsyncSession = Depends(get_db),
):
    return list(await permission_crud.list_permissions(db, resource))


@router.delete(
    "/permissions/{permission_id}",
    name="permissions.delete",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_operator_key)],
)
async def delete_permission(permission_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await permission_crud.delete_permission(db, permission_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------
# Role assignment inside a tenant
# ---------------------------------------------------------
@router.post(
    "/user/{user_id}/tenant/{tenant_id}/role/{role_id}",
    name="memberships.assign_role",
    response_model=MembershipOut,
)
async def assign_role(
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    role_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await resolver.assign_role_to_user(db, user_id, tenant_id, role_id)


@router.delete(
    "/user/{user_id}/tenant/{tenant_id}/role",
    name="memberships.remove_role",
    response_model=MembershipOut,
)
async def remove_role(user_id: uuid.UUID, tenant_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await resolver.remove_role_from_user(db, user_id, tenant_id)


@router.get(
    "/user/{user_id}/tenant/{tenant_id}/permissions",
    name="memberships.permissions",
    response_model=UserPermissionsOut,
)
async def user_permissions(user_id: uuid.UUID, tenant_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    permissions = await resolver.get_user_permissions(db, user_id, tenant_id)
    return UserPermissionsOut(permissions=sorted(permissions))


@router.get(
    "/user/{user_id}/tenant/{tenant_id}/check-permission",
    name="memberships.check_permission",
    response_model=PermissionCheckOut,
)
async def check_permission(
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    resource: str = Query(..., min_length=1),
    action: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    allowed = await resolver.has_permission(db, user_id, tenant_id, resource, action)
    return PermissionCheckOut(has_permission=allowed)


# ---------------------------------------------------------
# Roles
# ---------------------------------------------------------
@router.post("", name="roles.create", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
async def create_role(payload: RoleCreate, db: AsyncSession = Depends(get_db)):
    detail = await role_crud.create_role(
        db,
        name=payload.name,
        description=payload.description,
        permission_ids=payload.permission_ids,
    )
    return RoleOut.from_detail(detail)


@router.get("", name="roles.list", response_model=List[RoleOut])
async def list_roles(db: AsyncSession = Depends(get_db)):
    return [RoleOut.from_detail(d) for d in await role_crud.list_roles(db)]


@router.get("/{role_id}", name="roles.get", response_model=RoleOut)
async def get_role(role_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return RoleOut.from_detail(await role_crud.get_role(db, role_id))


@router.put("/{role_id}", name="roles.update", response_model=RoleOut)
async def update_role(
    role_id: uuid.UUID,
    payload: RoleUpdate,
    db: AsyncSession = Depends(get_db),
    tenant_id: uuid.UUID = Depends(get_guarded_tenant_id),
):
    data = payload.model_dump(exclude_unset=True)
    detail = await role_crud.update_role(
        db,
        role_id,
        name=data.get("name"),
        description=data.get("description"),
        permission_ids=data.get("permission_ids"),
        tenant_id=tenant_id,
    )
    return RoleOut.from_detail(detail)


@router.delete("/{role_id}", name="roles.delete", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(role_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    await role_crud.delete_role(db, role_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
