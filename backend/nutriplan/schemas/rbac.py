from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from nutriplan.crud.role import RoleDetail


class PermissionCreate(BaseModel):
    name: str = Field(min_length=3, max_length=100, examples=["recipe:read"])
    resource: str = Field(min_length=1, max_length=50)
    action: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=255)


class PermissionOut(BaseModel):
    id: UUID
    name: str
    resource: str
    action: str
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=255)
    permission_ids: List[UUID] = Field(default_factory=list)


class RoleUpdate(BaseModel):
    # Omitted fields are left alone; permission_ids replaces the whole bundle.
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=255)
    permission_ids: Optional[List[UUID]] = None


class RoleOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    is_system: bool
    permissions: List[PermissionOut] = []
    membership_count: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_detail(cls, detail: RoleDetail) -> "RoleOut":
        role = detail.role
        return cls(
            id=role.id,
            name=role.name,
            description=role.description,
            is_system=role.is_system,
            permissions=[PermissionOut.model_validate(p) for p in role.permissions],
            membership_count=detail.membership_count,
            created_at=role.created_at,
        )


class RoleSummary(BaseModel):
    id: UUID
    name: str
    is_system: bool
    permissions: List[PermissionOut] = []

    model_config = {"from_attributes": True}


class MembershipOut(BaseModel):
    id: UUID
    user_id: UUID
    tenant_id: UUID
    role_id: Optional[UUID] = None
    role: Optional[RoleSummary] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UserPermissionsOut(BaseModel):
    permissions: List[str]


class PermissionCheckOut(BaseModel):
    has_permission: bool


class BootstrapOut(BaseModel):
    message: str
    permissions_created: int
    roles_created: int
    permissions_total: int
    roles_total: int
