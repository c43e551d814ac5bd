"""Shared test fixtures for the Commit Graph backend.

Provides:
- A fresh SQLite database per test (set TEST_DATABASE_URL to use another)
- FastAPI test client with the DB dependency overridden
- Factory helpers for users and milestones
"""

from __future__ import annotations

import os
import uuid

# Set test environment BEFORE any app imports so Settings() picks them up.
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-pytest-only")
os.environ.setdefault("REFRESH_SECRET_KEY", "test-refresh-secret-for-pytest-only")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CLIENT_URL", "http://client.test")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.security import create_access_token, create_refresh_token
from app.models import Base

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def test_engine(tmp_path):
    """Engine bound to an empty database with all tables created."""
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(url, echo=False, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db(test_engine):
    session = AsyncSession(bind=test_engine, expire_on_commit=False)
    yield session
    await session.close()


# ---------------------------------------------------------------------------
# FastAPI test app + HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def app(db):
    """Minimal FastAPI test app with ``get_db`` overridden to use the test session."""
    from fastapi import FastAPI
    from slowapi import _rate_limit_exceeded_handler
    from slowapi.errors import RateLimitExceeded

    from app.api.errors import register_exception_handlers
    from app.api.v1.router import api_router
    from app.config import settings
    from app.core.rate_limit import limiter
    from app.database import get_db

    test_app = FastAPI()
    test_app.state.limiter = limiter
    test_app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    register_exception_handlers(test_app)
    test_app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    async def _override_get_db():
        yield db

    test_app.dependency_overrides[get_db] = _override_get_db
    yield test_app
    test_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """HTTP test client for the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c


@pytest.fixture(autouse=True)
def _disable_rate_limiter():
    """Disable slowapi rate limiting during tests to avoid 429 responses."""
    from app.core.rate_limit import limiter

    limiter.enabled = False
    yield
    limiter.enabled = True


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


async def create_user(db, *, email=None, provider="github", provider_id=None, name="Test User"):
    """Insert a user into the test database."""
    from app.models.user import User

    user = User(
        email=email or f"test-{uuid.uuid4().hex[:8]}@example.com",
        name=name,
        provider=provider,
        provider_id=provider_id or uuid.uuid4().hex,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    return user


async def create_milestone(db, *, user, title="Milestone", order=0, completed=False, **kwargs):
    """Insert a milestone with an explicit order."""
    from app.models.milestone import Milestone, MilestoneType

    ms = Milestone(
        user_id=user.id,
        title=title,
        description=kwargs.get("description", ""),
        type=MilestoneType(kwargs.get("type", "feature")),
        tags=kwargs.get("tags", []),
        completed=completed,
        order=order,
    )
    db.add(ms)
    await db.commit()
    return ms


async def create_sequence(db, user, *completed_flags):
    """Insert milestones A, B, C... at orders 0, 1, 2... with the given flags."""
    out = []
    for i, done in enumerate(completed_flags):
        out.append(
            await create_milestone(db, user=user, title=chr(ord("A") + i), order=i, completed=done)
        )
    return out


def auth_headers(user) -> dict[str, str]:
    """Generate Bearer token headers for a test user."""
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}


def refresh_token_for(user) -> str:
    return create_refresh_token(user.id)


# ---------------------------------------------------------------------------
# Convenience fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def user(db):
    return await create_user(db, email="owner@test.com")


@pytest.fixture
async def other_user(db):
    return await create_user(db, email="other@test.com")
