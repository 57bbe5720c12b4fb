# nutriplan/api/v1/tenants.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from nutriplan.api.deps.auth import get_current_user
from nutriplan.api.deps.permissions import enforce_permissions
from nutriplan.crud import tenant as tenant_crud
from nutriplan.crud.membership import delete_membership
from nutriplan.db.session import get_db
from nutriplan.models.user import User
from nutriplan.rbac.resolver import get_user_permissions
from nutriplan.schemas.rbac import MembershipOut, UserPermissionsOut
from nutriplan.schemas.tenant import MemberAdd, TenantCreate, TenantOut

router = APIRouter(prefix="/tenants", tags=["tenants"], dependencies=[Depends(enforce_permissions)])


@router.post("", name="tenants.create", response_model=TenantOut, status_code=status.HTTP_201_CREATED)
async def create_tenant(
    payload: TenantCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Create a household; the caller becomes its first member with the admin role.
    """
    return await tenant_crud.create_tenant(db, name=payload.name, owner=user)


@router.get("", name="tenants.list", response_model=List[TenantOut])
async def list_my_tenants(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return list(await tenant_crud.list_user_tenants(db, user.id))


@router.get("/{tenant_id}/me/permissions", name="tenants.my_permissions", response_model=UserPermissionsOut)
async def my_permissions(
    tenant_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Effective permissions of the caller in this tenant (empty when not a member).
    """
    return UserPermissionsOut(permissions=sorted(await get_user_permissions(db, user.id, tenant_id)))


@router.post(
    "/{tenant_id}/members",
    name="tenants.add_member",
    response_model=MembershipOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    tenant_id: uuid.UUID,
    payload: MemberAdd,
    db: AsyncSession = Depends(get_db),
):
    return await tenant_crud.add_member(db, tenant_id, email=payload.email, role_id=payload.role_id)


@router.delete("/{tenant_id}/members/me", name="tenants.leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_tenant(
    tenant_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await delete_membership(db, user.id, tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
