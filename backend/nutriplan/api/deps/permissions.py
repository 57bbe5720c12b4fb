from __future__ import annotations

import json
import secrets
import uuid
from typing import Any, Mapping, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from nutriplan.api.deps.auth import get_optional_user
from nutriplan.core.config import settings
from nutriplan.core.errors import MISSING_CONTEXT_MESSAGE, AuthorizationError
from nutriplan.db.session import get_db
from nutriplan.models.user import User
from nutriplan.rbac.guard import OperationContext, permission_guard, resolve_tenant_id


async def _json_object_body(request: Request) -> Optional[Mapping[str, Any]]:
    """
    The request body when it is a JSON object; anything else yields None.
    Starlette caches the body, so the endpoint can still read it afterwards.
    """
    content_type = request.headers.get("content-type", "")
    if "json" not in content_type.lower():
        return None

    raw = await request.body()
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        # FastAPI rejects malformed JSON itself; the guard just sees no body.
        return None
    return data if isinstance(data, dict) else None


async def enforce_permissions(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: Optional[User] = Depends(get_optional_user),
) -> Optional[str]:
    """
    Router-level dependency running the permission guard for the matched route.

    The route's `name` is the operation id looked up in OPERATION_PERMISSIONS.
    Raises AuthorizationError (403) to stop the request before the endpoint.
    """
    route = request.scope.get("route")
    operation_id = getattr(route, "name", None)

    context = OperationContext(
        user_id=user.id if user is not None else None,
        path_params=dict(request.path_params),
        body=await _json_object_body(request),
        query_params=dict(request.query_params),
    )
    required = await permission_guard.check(db, operation_id, context)
    if required is not None:
        # the tenant the permission was granted in
        request.state.tenant_id = resolve_tenant_id(context)
    return required


def get_guarded_tenant_id(request: Request) -> uuid.UUID:
    """
    Tenant in which enforce_permissions authorized this request.
    Only valid on routes that declare a permission.
    """
    tenant_id = getattr(request.state, "tenant_id", None)
    if tenant_id is None:
        raise AuthorizationError(MISSING_CONTEXT_MESSAGE)
    return tenant_id


async def require_operator_key(
    x_operator_key: Optional[str] = Header(default=None, alias="X-Operator-Key"),
) -> None:
    """
    Catalog-wide operations (bootstrap, permission create/delete) are not
    tenant-scoped, so they take the operator's shared secret instead.
    """
    expected = settings.RBAC_OPERATOR_KEY
    if not expected:
        raise AuthorizationError("Catalog administration is disabled (RBAC_OPERATOR_KEY not set)")
    if not x_operator_key or not secrets.compare_digest(x_operator_key, expected):
        raise AuthorizationError("Invalid operator key")
