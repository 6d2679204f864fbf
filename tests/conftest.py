"""Shared test fixtures for the BizHub access-control backend.

Provides:
- Async SQLite test database (fresh in-memory schema per test)
- FastAPI test client with overridden DB dependency
- Factory helpers for creating users and invitations
- Convenience fixtures for common test setups (admin_user, employee_user, etc.)
"""

from __future__ import annotations

import os
import uuid
from datetime import timedelta

# Set test environment BEFORE any app imports so Settings() picks them up.
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-pytest-only")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from bizhub.core.permissions import Department, EnhancedUserRole
from bizhub.core.security import create_access_token
from bizhub.models import Base

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def db():
    """Session on a fresh in-memory database.

    StaticPool keeps every connection on the same in-memory database, so rows
    committed by code under test stay visible for the rest of the test.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite defers BEGIN; emit it ourselves so SAVEPOINTs nest correctly
    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_on_connect(dbapi_conn, _):
        dbapi_conn.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _sqlite_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(bind=engine, expire_on_commit=False)

    yield session

    await session.close()
    await engine.dispose()


# ---------------------------------------------------------------------------
# FastAPI test app + HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def app(db):
    """Minimal FastAPI test app with ``get_db`` overridden to use the test session."""
    from fastapi import FastAPI
    from fastapi.responses import JSONResponse
    from slowapi import _rate_limit_exceeded_handler
    from slowapi.errors import RateLimitExceeded

    from bizhub.api.v1.router import api_router
    from bizhub.config import settings
    from bizhub.core.exceptions import AccessControlError
    from bizhub.core.rate_limit import limiter
    from bizhub.database import get_db

    test_app = FastAPI()
    test_app.state.limiter = limiter
    test_app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @test_app.exception_handler(AccessControlError)
    async def _access_control_error(request, exc):
        return JSONResponse(status_code=500, content={"detail": str(exc)})

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
    from bizhub.core.rate_limit import limiter

    limiter.enabled = False
    yield
    limiter.enabled = True


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


async def create_user(
    db,
    *,
    email=None,
    role=EnhancedUserRole.EMPLOYEE,
    department=Department.OPERATIONS,
    display_name="Test User",
    is_active=True,
    mfa_enabled=False,
):
    """Insert a user into the test database."""
    from bizhub.models.user import User

    user = User(
        email=email or f"test-{uuid.uuid4().hex[:8]}@example.com",
        display_name=display_name,
        role=role,
        department=department,
        is_active=is_active,
        mfa_enabled=mfa_enabled,
    )
    db.add(user)
    await db.flush()
    return user


async def create_invitation(
    db,
    *,
    email="invitee@example.com",
    role=EnhancedUserRole.EMPLOYEE,
    status=None,
    expires_in=timedelta(days=7),
    invited_by=None,
    token=None,
):
    """Insert an invitation row directly, bypassing the service."""
    from bizhub.models.base import utcnow
    from bizhub.models.invitation import InvitationStatus, UserInvitation

    invitation = UserInvitation(
        token=token or f"tok-{uuid.uuid4().hex}",
        email=email,
        role=role,
        status=status or InvitationStatus.PENDING,
        expires_at=utcnow() + expires_in,
        invited_by=invited_by,
    )
    db.add(invitation)
    await db.flush()
    return invitation


async def set_allowed_domains(db, domains, require_domain=False):
    """Store the allowed-domain configuration."""
    from bizhub.schemas.access_control import AllowedDomainsConfig
    from bizhub.services.access_control_service import AccessControlService

    return await AccessControlService.update_allowed_domains(
        db, AllowedDomainsConfig(domains=domains, require_domain=require_domain), None
    )


def auth_headers(user) -> dict[str, str]:
    """Generate Bearer token headers for a test user."""
    token = create_access_token(user.id, user.role.value)
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Convenience fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def admin_user(db):
    return await create_user(
        db,
        email="admin@test.com",
        role=EnhancedUserRole.ADMIN,
        department=Department.IT,
        mfa_enabled=True,
    )


@pytest.fixture
async def employee_user(db):
    return await create_user(
        db,
        email="employee@test.com",
        role=EnhancedUserRole.EMPLOYEE,
        department=Department.OPERATIONS,
    )


@pytest.fixture
async def super_admin_user(db):
    return await create_user(
        db,
        email="root@test.com",
        role=EnhancedUserRole.SUPER_ADMIN,
        department=Department.EXECUTIVE,
        mfa_enabled=True,
    )
