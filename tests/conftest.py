"""Pytest configuration and fixtures.

Database handling:
- Every test gets its own file-backed SQLite database (aiosqlite) under tmp_path
- Tests marked with ``requires_postgres`` run only when TEST_DATABASE_URL points
  at a PostgreSQL database
"""

import asyncio
import os
import tempfile
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment variables before importing app modules
TEST_JWT_SECRET = "test-secret-key-that-is-long-enough-0123456789"
os.environ["JWT_SECRET_KEY"] = TEST_JWT_SECRET
os.environ["DATABASE_URL"] = (
    f"sqlite+aiosqlite:///{os.path.join(tempfile.mkdtemp(), 'innosistemas.db')}"
)
os.environ["REVOCATION_SWEEP_INTERVAL_SECONDS"] = "0"

from innosistemas import models  # noqa: E402,F401
from innosistemas.core.config import Settings  # noqa: E402
from innosistemas.core.database import Base  # noqa: E402
from innosistemas.services.revocation_store import (  # noqa: E402
    RevocationOutcome,
    SqlRevocationStore,
    token_digest,
)
from innosistemas.services.signer import Signer, SigningKey, TokenKind  # noqa: E402
from innosistemas.services.tokens import TokenService  # noqa: E402

TEST_USER_EMAIL = "ana.perez@udea.edu.co"
TEST_USER_PASSWORD = "correct-horse-battery"

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "")

requires_postgres = pytest.mark.skipif(
    not TEST_DATABASE_URL.startswith("postgresql"),
    reason="PostgreSQL test database not configured (TEST_DATABASE_URL)",
)


# --- Clock and signing ---


class FakeClock:
    """Controllable UTC clock for expiry tests."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class MemoryRevocationStore:
    """In-process RevocationStore with an atomic check-and-insert.

    The sleep(0) yields to other tasks between receiving a call and taking the
    lock, so concurrent callers really interleave.
    """

    def __init__(self):
        self.records: dict[str, dict] = {}
        self._lock = asyncio.Lock()

    async def exists(self, token: str) -> bool:
        await asyncio.sleep(0)
        return token_digest(token) in self.records

    async def record(
        self, token: str, subject: str, expires_at: datetime, kind: TokenKind
    ) -> RevocationOutcome:
        await asyncio.sleep(0)
        async with self._lock:
            digest = token_digest(token)
            if digest in self.records:
                return RevocationOutcome.ALREADY_REVOKED
            self.records[digest] = {"subject": subject, "expires_at": expires_at, "kind": kind}
            return RevocationOutcome.REVOKED


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def signing_key() -> SigningKey:
    return SigningKey(secret=TEST_JWT_SECRET.encode(), algorithm="HS256")


@pytest.fixture
def signer(signing_key, clock) -> Signer:
    return Signer(signing_key, clock=clock)


@pytest.fixture
def memory_store() -> MemoryRevocationStore:
    return MemoryRevocationStore()


@pytest.fixture
def memory_token_service(signer, memory_store) -> TokenService:
    """TokenService over the in-process store, for tests that need no database."""
    return TokenService(
        signer=signer,
        store=memory_store,
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
    )


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create a fresh SQLite database with all tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def revocation_store(session_maker) -> SqlRevocationStore:
    return SqlRevocationStore(session_maker, timeout=5.0)


@pytest.fixture
def token_service(signer, revocation_store) -> TokenService:
    return TokenService(
        signer=signer,
        store=revocation_store,
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=7),
    )


# --- Users ---


@pytest.fixture
def user_factory(db_session):
    """Factory for creating committed test users."""
    from innosistemas.models.user import Role, User
    from innosistemas.services.passwords import hash_password

    counter = {"n": 0}

    async def _create_user(
        email: str = TEST_USER_EMAIL,
        password: str = TEST_USER_PASSWORD,
        role: Role = Role.STUDENT,
        enabled: bool = True,
        name: str = "Ana Pérez",
    ) -> User:
        counter["n"] += 1
        user = User(
            name=name,
            email=email,
            identity_document=f"10000000{counter['n']:02d}",
            password_hash=hash_password(password),
            role=role.value,
            enabled=enabled,
        )
        db_session.add(user)
        # Commit so connections used by the app and the store see the row
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _create_user


@pytest_asyncio.fixture
async def test_user(user_factory):
    return await user_factory()


# --- HTTP app ---


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        jwt_secret_key=TEST_JWT_SECRET,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        revocation_sweep_interval_seconds=0,
    )


@pytest.fixture(autouse=True)
def reset_login_rate_limiter():
    """Clear the per-IP login attempt window between tests."""
    from innosistemas.api.auth import _login_attempts

    _login_attempts.clear()
    yield
    _login_attempts.clear()


@pytest.fixture
def app(test_settings, session_maker):
    """Application wired to the per-test database."""
    from innosistemas.core.database import get_db
    from innosistemas.main import create_app

    application = create_app(test_settings, session_maker)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def auth_tokens(async_client, test_user) -> dict[str, str]:
    """Log the test user in through the API."""
    response = await async_client.post(
        "/auth/login",
        json={"email": TEST_USER_EMAIL, "password": TEST_USER_PASSWORD},
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def auth_headers(auth_tokens) -> dict[str, str]:
    """Headers with JWT token for authenticated requests."""
    return {"Authorization": f"Bearer {auth_tokens['access_token']}"}


# --- Pytest Hooks for Auto-Marking ---


def pytest_collection_modifyitems(config, items):
    """Mark tests using the database or the app as 'integration', the rest as 'unit'."""
    integration_fixtures = {"db_session", "db_engine", "async_client", "app", "session_maker"}

    for item in items:
        if any(mark.name in ("unit", "integration") for mark in item.iter_markers()):
            continue
        if hasattr(item, "fixturenames") and integration_fixtures & set(item.fixturenames):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
