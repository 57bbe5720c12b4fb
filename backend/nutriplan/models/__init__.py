# Import models here so Alembic can discover metadata.
from nutriplan.models.user import User  # noqa: F401
from nutriplan.models.tenant import Tenant  # noqa: F401

# RBAC: permissions, roles, memberships
from nutriplan.models.permission import Permission  # noqa: F401
from nutriplan.models.role import Role, role_permissions  # noqa: F401
from nutriplan.models.membership import Membership  # noqa: F401
