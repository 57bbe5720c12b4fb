from __future__ import annotations

import uuid

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from nutriplan.core.security import create_access_token
from nutriplan.db.session import enable_sqlite_foreign_keys, get_db

# Ensure Base + models are registered before create_all
from nutriplan.db.base import Base
import nutriplan.models  # noqa: F401
from nutriplan.models.membership import Membership
from nutriplan.models.tenant import Tenant
from nutriplan.models.user import User
from nutriplan.rbac.bootstrap import initialize_system_roles


# ---------------------------------------------------------
# Engine: one fresh SQLite file per test
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def engine(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path / 'nutriplan_test.db'}"
    engine = create_async_engine(url, future=True, echo=False, poolclass=NullPool)
    enable_sqlite_foreign_keys(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture()
def sessionmaker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ---------------------------------------------------------
# DB session for service calls / setup / assertions
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def db(sessionmaker):
    async with sessionmaker() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------
# FastAPI app + dependency override
# ---------------------------------------------------------
@pytest.fixture()
def app(sessionmaker):
    from nutriplan.main import app as fastapi_app

    async def _override_get_db():
        async with sessionmaker() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = _override_get_db
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
    ) as ac:
        yield ac


# ---------------------------------------------------------
# Data helpers
# ---------------------------------------------------------
@pytest_asyncio.fixture()
async def seeded(db):
    """Canonical permission catalog + system roles."""
    return await initialize_system_roles(db)


async def create_user(db, email: str | None = None) -> User:
    user = User(email=email or f"user_{uuid.uuid4().hex[:8]}@example.com", is_active=True)
    db.add(user)
    await db.flush()
    return user


async def create_tenant(db, name: str | None = None) -> Tenant:
    tenant = Tenant(name=name or f"Household {uuid.uuid4().hex[:8]}", is_active=True)
    db.add(tenant)
    await db.flush()
    return tenant


async def add_membership(db, user_id: uuid.UUID, tenant_id: uuid.UUID, role_id: uuid.UUID | None = None) -> Membership:
    m = Membership(user_id=user_id, tenant_id=tenant_id, role_id=role_id)
    db.add(m)
    await db.flush()
    return m


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
