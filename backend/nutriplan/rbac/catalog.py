from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Mapping, Tuple

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_MEMBER = "member"
ROLE_VIEWER = "viewer"

SYSTEM_ROLE_NAMES: Tuple[str, ...] = (ROLE_ADMIN, ROLE_MANAGER, ROLE_MEMBER, ROLE_VIEWER)

CRUD_ACTIONS: Tuple[str, ...] = ("create", "read", "update", "delete")


@dataclass(frozen=True)
class PermissionDef:
    resource: str
    action: str
    description: str

    @property
    def name(self) -> str:
        return permission_name(self.resource, self.action)


@dataclass(frozen=True)
class RoleDef:
    name: str
    description: str
    permissions: FrozenSet[str]


def permission_name(resource: str, action: str) -> str:
    return f"{resource}:{action}"


def split_permission(name: str) -> Tuple[str, str]:
    """
    "shopping-list:read" -> ("shopping-list", "read"). Splits on the first ':'.
    """
    resource, sep, action = name.partition(":")
    if not sep or not resource or not action:
        raise ValueError(f"Permission {name!r} is not of the form 'resource:action'")
    return resource, action


def _crud(resource: str, noun: str) -> Tuple[PermissionDef, ...]:
    verbs = {"create": "Create", "read": "View", "update": "Update", "delete": "Delete"}
    return tuple(PermissionDef(resource, a, f"{verbs[a]} {noun}") for a in CRUD_ACTIONS)


# (resource, action, description) for every permission the platform knows about.
PERMISSION_CATALOG: Tuple[PermissionDef, ...] = (
    *_crud("user", "users"),
    *_crud("tenant", "tenants"),
    *_crud("role", "roles"),
    *_crud("recipe", "recipes"),
    *_crud("meal", "meals"),
    *_crud("plan", "plans"),
    *_crud("shopping-list", "shopping lists"),
    PermissionDef("analytics", "read", "View analytics"),
    *_crud("collaboration", "collaboration items"),
)

CATALOG_NAMES: FrozenSet[str] = frozenset(p.name for p in PERMISSION_CATALOG)


def _names(resource: str, *actions: str) -> FrozenSet[str]:
    return frozenset(permission_name(resource, a) for a in actions)


_CONTENT_RESOURCES = ("recipe", "meal", "plan", "shopping-list", "collaboration")

SYSTEM_ROLES: Mapping[str, RoleDef] = {
    ROLE_ADMIN: RoleDef(
        name=ROLE_ADMIN,
        description="Full administrative access",
        permissions=CATALOG_NAMES,
    ),
    ROLE_MANAGER: RoleDef(
        name=ROLE_MANAGER,
        description="Management access with limited administrative capabilities",
        permissions=frozenset().union(
            _names("user", "read", "update"),
            _names("tenant", "read", "update"),
            *(_names(r, *CRUD_ACTIONS) for r in _CONTENT_RESOURCES),
            _names("analytics", "read"),
        ),
    ),
    ROLE_MEMBER: RoleDef(
        name=ROLE_MEMBER,
        description="Standard user access",
        permissions=frozenset().union(
            _names("recipe", "create", "read", "update"),
            _names("meal", "create", "read", "update"),
            _names("plan", "create", "read", "update"),
            _names("shopping-list", "read", "update"),
            _names("analytics", "read"),
            _names("collaboration", "create", "read", "update"),
        ),
    ),
    ROLE_VIEWER: RoleDef(
        name=ROLE_VIEWER,
        description="Read-only access",
        permissions=frozenset(
            permission_name(r, "read")
            for r in ("recipe", "meal", "plan", "shopping-list", "analytics", "collaboration")
        ),
    ),
}


def _check_system_roles() -> None:
    for role in SYSTEM_ROLES.values():
        unknown = role.permissions - CATALOG_NAMES
        if unknown:
            raise RuntimeError(f"System role {role.name!r} references unknown permissions: {sorted(unknown)}")


_check_system_roles()
