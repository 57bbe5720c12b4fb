"""
Error taxonomy for the RBAC engine.

Services raise these; nutriplan.main renders them as JSON `{"detail": ...}`
with the status code carried by the class.
"""

from __future__ import annotations

from fastapi import status


class RBACError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RBACError):
    """Malformed input to an administrative operation."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(RBACError):
    """Referenced role, permission or membership does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(RBACError):
    """Operation would break a protection invariant (system role, in-use row, duplicate name)."""

    status_code = status.HTTP_409_CONFLICT


class AuthorizationError(RBACError):
    """Raised by the request guard: missing context or insufficient permission."""

    status_code = status.HTTP_403_FORBIDDEN


MISSING_CONTEXT_MESSAGE = "User ID and Tenant ID are required"


def insufficient_permissions(permission: str) -> AuthorizationError:
    return AuthorizationError(f"Insufficient permissions: {permission}")
