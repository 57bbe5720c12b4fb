"""
Declared permission per operation.

Keys are FastAPI route names (`name=` on the route decorator). The request
guard looks the matched route up here at dispatch time; an operation with no
entry is not permission-checked by tenant.
"""

from __future__ import annotations

from typing import Mapping

OPERATION_PERMISSIONS: Mapping[str, str] = {
    # Role administration
    "roles.create": "role:create",
    "roles.list": "role:read",
    "roles.get": "role:read",
    "roles.update": "role:update",
    "roles.delete": "role:delete",
    # Permission catalog (writes take the operator key, see api/v1/roles.py)
    "permissions.list": "role:read",
    # Role assignment inside a tenant
    "memberships.assign_role": "role:update",
    "memberships.remove_role": "role:update",
    "memberships.permissions": "user:read",
    "memberships.check_permission": "user:read",
    # Tenant membership
    "tenants.add_member": "user:create",
}

