"""
Pytest configuration and shared fixtures.

This file provides common fixtures for all tests. Every test function gets its
own SQLite database file, so tests never share state.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from http.cookies import SimpleCookie
from pathlib import Path

import pytest
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport, Response
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from booktracker.config import Settings, UserRole
from booktracker.core.database import (
    create_engine_from_settings,
    create_session_factory,
    create_tables,
    get_db,
)
from booktracker.core.security import get_password_hash
from booktracker.main import create_app
from booktracker.models.user import Users

TEST_PASSWORD = "TestPassword123!"
REFRESH_COOKIE = "refreshToken"
GOOGLE_CLIENT_ID = "test-client-id.apps.googleusercontent.com"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """
    Settings for tests.

    .env is ignored so a developer's local configuration cannot leak in. bcrypt
    runs at its minimum cost to keep the suite fast.
    """
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        ENVIRONMENT="test",
        JWT_ACCESS_SECRET="test-access-secret-0123456789",
        JWT_REFRESH_SECRET="test-refresh-secret-0123456789",
        BCRYPT_ROUNDS=4,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        DB_CREATE_TABLES=False,
        GOOGLE_CLIENT_ID=GOOGLE_CLIENT_ID,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
async def engine(settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """Create the test database schema from the SQLModel metadata."""
    test_engine = create_engine_from_settings(settings)
    await create_tables(test_engine)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a new database session for each test.

    The same session is handed to the app, so rows created by a test are
    visible to requests and vice versa.
    """
    async with create_session_factory(engine)() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def app(settings: Settings, db_session: AsyncSession) -> AsyncGenerator[FastAPI, None]:
    """
    Create FastAPI app with test database session.

    This overrides the database dependency to use the test session.
    """
    test_app = create_app(settings)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    test_app.dependency_overrides[get_db] = override_get_db

    yield test_app

    test_app.dependency_overrides.clear()
    await test_app.state.engine.dispose()


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Create async HTTP client for testing API endpoints.

    Usage:
        async def test_endpoint(client):
            response = await client.get("/api/v1/auth/me")
            assert response.status_code == 401
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# =============================================================================
# Test Data Fixtures
# =============================================================================

UserFactory = Callable[..., Awaitable[Users]]


@pytest.fixture
def make_user(db_session: AsyncSession) -> UserFactory:
    """
    Factory for users with a known password.

    Usage:
        async def test_login(make_user):
            user = await make_user("reader@example.com", is_banned=True)
    """

    async def _make_user(
        email: str = "reader@example.com",
        *,
        name: str = "Test Reader",
        password: str = TEST_PASSWORD,
        role: UserRole = UserRole.USER,
        is_banned: bool = False,
    ) -> Users:
        user = Users(
            name=name,
            email=email,
            password_hash=get_password_hash(password, rounds=4),
            role=role.value,
            is_banned=is_banned,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
async def test_user(make_user: UserFactory) -> Users:
    return await make_user("reader@example.com", name="Regular Reader")


@pytest.fixture
async def test_admin(make_user: UserFactory) -> Users:
    return await make_user("admin@example.com", name="Site Admin", role=UserRole.ADMIN)


# =============================================================================
# HTTP helpers
# =============================================================================


def set_cookie_headers(response: Response, name: str = REFRESH_COOKIE) -> list[SimpleCookie]:
    """Parsed Set-Cookie headers of a response that carry `name`."""
    cookies = []
    for header in response.headers.get_list("set-cookie"):
        parsed: SimpleCookie = SimpleCookie()
        parsed.load(header)
        if name in parsed:
            cookies.append(parsed)
    return cookies


def refresh_cookie_from(response: Response) -> str | None:
    """The refresh token a response set, or None if it set none (or cleared it)."""
    cookies = set_cookie_headers(response)
    if not cookies:
        return None
    return cookies[-1][REFRESH_COOKIE].value or None


def cookie_was_cleared(response: Response) -> bool:
    return any(c[REFRESH_COOKIE]["max-age"] == "0" for c in set_cookie_headers(response))


def send_refresh_cookie(client: AsyncClient, token: str | None) -> None:
    """Make the next request carry exactly this refresh cookie (or none)."""
    client.cookies.clear()
    if token is not None:
        client.cookies.set(REFRESH_COOKIE, token)


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def login(client: AsyncClient, email: str, password: str = TEST_PASSWORD) -> Response:
    response = await client.post(
        "/api/v1/auth/login", json={"email": email, "password": password}
    )
    assert response.status_code == 200, response.text
    return response
