from __future__ import annotations

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class TenantCreate(BaseModel):
    name: str = Field(min_length=2, max_length=200)


class TenantOut(BaseModel):
    id: UUID
    name: str
    is_active: bool

    model_config = {"from_attributes": True}


class MemberAdd(BaseModel):
    email: EmailStr
    role_id: Optional[UUID] = Field(
        default=None,
        description="Optional role for the new member; omit to add without permissions.",
    )
