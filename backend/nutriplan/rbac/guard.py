"""
Request guard: decides whether an operation may run for the acting user.

    Start -> ExtractRequirement -> ExtractContext -> Resolve -> Allow | Deny

Operations without a declared permission are allowed unconditionally; checks
are opt-in per operation. Denials raise AuthorizationError before any
business logic runs.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from nutriplan.core.errors import (
    MISSING_CONTEXT_MESSAGE,
    AuthorizationError,
    ValidationError,
    insufficient_permissions,
)
from nutriplan.rbac.catalog import split_permission
from nutriplan.rbac.operations import OPERATION_PERMISSIONS
from nutriplan.rbac.resolver import has_permission

logger = logging.getLogger(__name__)

TENANT_ID_KEYS = ("tenant_id", "tenantId")


@dataclass(frozen=True)
class OperationContext:
    """Everything the guard may read about one call."""

    user_id: Optional[uuid.UUID]
    path_params: Mapping[str, Any] = field(default_factory=dict)
    body: Optional[Mapping[str, Any]] = None
    query_params: Mapping[str, Any] = field(default_factory=dict)


def _coerce_uuid(value: Any) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value).strip())
    except ValueError:
        raise ValidationError("tenant_id must be a valid UUID") from None


def resolve_tenant_id(context: OperationContext) -> Optional[uuid.UUID]:
    """
    First non-empty tenant id from path, then body, then query.
    """
    for source in (context.path_params, context.body or {}, context.query_params):
        for key in TENANT_ID_KEYS:
            value = source.get(key)
            if value is not None and value != "":
                return _coerce_uuid(value)
    return None


class PermissionGuard:
    def __init__(self, permissions: Mapping[str, str] = OPERATION_PERMISSIONS) -> None:
        self._permissions = permissions

    def requirement_for(self, operation_id: Optional[str]) -> Optional[str]:
        if not operation_id:
            return None
        return self._permissions.get(operation_id)

    async def check(
        self,
        db: AsyncSession,
        operation_id: Optional[str],
        context: OperationContext,
    ) -> Optional[str]:
        """
        Return the permission that was checked (None when the operation
        declares none). Raise AuthorizationError to deny.
        """
        required = self.requirement_for(operation_id)
        if required is None:
            return None

        tenant_id = resolve_tenant_id(context)
        if context.user_id is None or tenant_id is None:
            logger.info(
                "guard rejected call without context",
                extra={"operation": operation_id, "has_user": context.user_id is not None},
            )
            raise AuthorizationError(MISSING_CONTEXT_MESSAGE)

        resource, action = split_permission(required)
        if not await has_permission(db, context.user_id, tenant_id, resource, action):
            logger.warning(
                "permission denied",
                extra={
                    "operation": operation_id,
                    "permission": required,
                    "user_id": str(context.user_id),
                    "tenant_id": str(tenant_id),
                },
            )
            raise insufficient_permissions(required)

        return required


permission_guard = PermissionGuard()
