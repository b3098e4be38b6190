"""
Pytest configuration and fixtures
"""
import os
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from database import Database
from main import create_app
from app.core import security
from app.core.security import create_access_token, hash_password
from app.models import User


# Test database URL (use in-memory SQLite for testing)
TEST_DATABASE_URL = os.getenv(
    "TEST_DATABASE_URL",
    "sqlite+aiosqlite:///:memory:"
)

OTHER_OWNER_ID = "00000000-0000-0000-0000-0000000000ff"


@pytest.fixture
async def database() -> AsyncGenerator[Database, None]:
    """
    Fresh schema per test
    """
    db = Database(TEST_DATABASE_URL)
    await db.create_all()
    yield db
    await db.drop_all()
    await db.dispose()


@pytest.fixture
async def db_session(database: Database) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session

    Commit (or roll back) before issuing HTTP requests: the in-memory database
    has a single connection shared with the app.
    """
    async with database.session_factory() as session:
        yield session


@pytest.fixture
def app(database: Database):
    return create_app(database)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture(autouse=True)
def reset_login_attempts():
    security.login_attempts.clear()
    yield
    security.login_attempts.clear()


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    """
    Create a test user
    """
    user = User(
        email="ana@clinica.com",
        password_hash=hash_password("senha-segura-123"),
        full_name="Ana Souza",
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def owner_id(test_user: User) -> str:
    return test_user.id


@pytest.fixture
def test_token(test_user: User) -> str:
    """
    Create a test JWT token
    """
    return create_access_token(data={"sub": test_user.id, "email": test_user.email, "role": test_user.role})


@pytest.fixture
def auth_headers(test_token: str) -> dict:
    """
    Create authorization headers for testing
    """
    return {"Authorization": f"Bearer {test_token}"}


@pytest.fixture
def other_headers() -> dict:
    """Headers of a second tenant"""
    token = create_access_token(data={"sub": OTHER_OWNER_ID, "email": "outra@clinica.com", "role": "psicologo"})
    return {"Authorization": f"Bearer {token}"}
