from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from nutriplan.core.security import bearer_scheme, decode_access_token
from nutriplan.db.session import get_db
from nutriplan.models.user import User


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    The caller's user when a bearer token is present, else None.
    A token that is present but invalid is still a 401.
    """
    if credentials is None:
        return None

    user_id: uuid.UUID = decode_access_token(credentials.credentials)
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User inactive")
    return user


async def get_current_user(user: Optional[User] = Depends(get_optional_user)) -> User:
    """
    Dependency for endpoints that always need an authenticated caller.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
