"""Shared fixtures: a fresh database per test and user factories.

Environment defaults are set before anything from ``tierplan`` is imported,
because settings and the module-level engine are built at import time.
"""

import os
import tempfile
from collections.abc import AsyncGenerator
from decimal import Decimal
from uuid import uuid4

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'tierplan-app.db')}",
)
os.environ.setdefault("JWT_SECRET_KEY", "tierplan-test-signing-key-f0e1d2c3b4a59687")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("REFERRAL_CODE_RETRY_DELAY_SECONDS", "0")

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from tierplan.models import Base, User, UserRole  # noqa: E402
from tierplan.utils.db import create_engine_for, create_session_factory  # noqa: E402

# Point at PostgreSQL to run the suite against the production dialect
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a test database engine with fresh tables for each test."""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'tierplan.db'}"
    engine = create_engine_for(url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    """Factory for extra sessions, e.g. to simulate concurrent requests."""
    return create_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session under test. Services commit their own transactions."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def reload(db: AsyncSession, session_factory):
    """Read a fresh, detached copy of a row.

    Whatever transaction the session under test left open is committed first,
    so the read is not blocked on the SQLite write lock.
    """

    async def _reload(model, ident):
        await db.commit()
        async with session_factory() as session:
            return await session.get(model, ident)

    return _reload


# =============================================================================
# User Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def make_user(db: AsyncSession, session_factory):
    """Factory that inserts a user row directly.

    Users are written through their own session and returned detached, so a
    rollback in the session under test never expires them.
    """

    async def _make_user(
        name: str = "Test User",
        *,
        role: UserRole = UserRole.USER,
        referral_code: str | None = None,
        referred_by: User | None = None,
        balance: Decimal = Decimal("0"),
    ) -> User:
        user = User(
            id=str(uuid4()),
            name=name,
            email=f"{uuid4().hex[:12]}@example.com",
            # Not a real hash; these users never log in
            password_hash="not-a-hash",
            role=role.value,
            referral_code=referral_code,
            referred_by_id=referred_by.id if referred_by else None,
            referred_by_code=referred_by.referral_code if referred_by else None,
            balance=balance,
            total_earned=balance,
        )
        await db.commit()
        async with session_factory() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest_asyncio.fixture(scope="function")
async def referrer(make_user) -> User:
    """A user who owns the canonical code REFCODE1."""
    return await make_user("Referrer", referral_code="REFCODE1")


@pytest_asyncio.fixture(scope="function")
async def referred(make_user, referrer: User) -> User:
    """A user who registered with the referrer's code."""
    return await make_user("Referred", referred_by=referrer)


@pytest_asyncio.fixture(scope="function")
async def admin(make_user) -> User:
    return await make_user("Admin", role=UserRole.ADMIN)
