import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["RATE_LIMIT"] = "10000/minute"

from typing import Annotated  # noqa: E402

import pytest  # noqa: E402
from fastapi import Depends  # noqa: E402
from fastapi.security import HTTPAuthorizationCredentials  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.core.database.engine import get_db, init_db  # noqa: E402
from app.features.permissions.constants import Role  # noqa: E402
from app.features.permissions.defaults import DEFAULT_PERMISSIONS  # noqa: E402
from app.features.permissions.dependencies import AuditSink, get_audit_sink  # noqa: E402
from app.features.permissions.models import RolePermission  # noqa: E402
from app.features.users.dependencies import get_optional_user, security  # noqa: E402
from app.features.users.models import User  # noqa: E402
from app.main import app  # noqa: E402


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def seeded(session_factory):
    async with session_factory() as session:
        session.add_all(RolePermission(**row) for row in DEFAULT_PERMISSIONS)
        await session.commit()


@pytest.fixture
async def users(session_factory, seeded) -> dict[str, User]:
    """One account per stored role, plus a second plain user."""
    accounts = {
        "user": User(identity_id="idp-user", email="user@example.org", name="Ming", role=Role.USER),
        "other": User(identity_id="idp-other", email="other@example.org", name="Hua", role=Role.USER),
        "grid_manager": User(identity_id="idp-gm", email="gm@example.org", name="Mei", role=Role.GRID_MANAGER),
        "admin": User(identity_id="idp-admin", email="admin@example.org", name="Jun", role=Role.ADMIN),
        "super_admin": User(identity_id="idp-root", email="root@example.org", name="Yu", role=Role.SUPER_ADMIN),
    }
    async with session_factory() as session:
        session.add_all(accounts.values())
        await session.commit()
    return accounts


@pytest.fixture
async def client(session_factory):
    """
    App client on the test database.

    Authenticate with ``headers=auth(user)`` (the auth fixture): the bearer token is
    the user's id.
    """
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def override_get_optional_user(
        credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
        db: Annotated[AsyncSession, Depends(get_db)],
    ):
        if credentials is None:
            return None
        return await db.get(User, credentials.credentials)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_optional_user] = override_get_optional_user
    app.dependency_overrides[get_audit_sink] = lambda: AuditSink(session_factory)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def _auth_headers(user: User, acting: str | None = None) -> dict[str, str]:
    headers = {"Authorization": f"Bearer {user.id}"}
    if acting is not None:
        headers["X-Acting-Role"] = acting
    return headers


@pytest.fixture
def auth():
    return _auth_headers
