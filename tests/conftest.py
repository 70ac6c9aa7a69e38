"""
tests/conftest.py -- Shared test fixtures for TenantGuard unit and integration tests.

This module provides:
  - _make_core(): builds Database -> stores -> TokenService -> services on an
    isolated in-memory DB
  - core: a fresh Core per test
  - super_admin / acme / globex: claims and tenants most service tests need
  - _patch_lifespan(): wires a test Core into app.state, bypassing real startup
  - api_client: TestClient plus the bootstrapped super admin's access token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any app import so get_settings()
auto-generates token secrets instead of raising, and hashing stays fast.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set these before any auth/core import so get_settings() can
# auto-generate token secrets in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import COMPANY_ADMIN, SUPER_ADMIN, BootstrapCommand, TokenClaims
from auth.service import AuthenticationService
from auth.store import UserStore
from auth.tokens import TokenService
from core.database import Database
from tenants.models import CreateTenantCommand, Tenant
from tenants.service import TenantService
from tenants.store import TenantStore

ACCESS_SECRET = "a" * 32 + "-access-test-secret"
REFRESH_SECRET = "r" * 32 + "-refresh-test-secret"
BOOTSTRAP_SECRET = "bootstrap-test-secret"
RESET_SECRET = "reset-test-secret"
DEFAULT_PASSWORD = "Welcome@2025"
ADMIN_EMAIL = "root@example.com"
ADMIN_PASSWORD = "RootPass123!"


@dataclass
class Core:
    db: Database
    user_store: UserStore
    tenant_store: TenantStore
    tokens: TokenService
    auth: AuthenticationService
    tenants: TenantService


# ---------------------------------------------------------------------------
# Core helpers
# ---------------------------------------------------------------------------


def _make_core(db_name: str, **auth_overrides) -> Core:
    """Build the whole object graph on an isolated named shared-memory SQLite DB.

    Args:
        db_name: Unique DB name so tests never share rows.
        auth_overrides: keyword overrides for AuthenticationService (e.g. reset_secret="").
    """
    db = Database(f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    tenant_store = TenantStore(db)
    user_store = UserStore(db)
    tokens = TokenService(ACCESS_SECRET, REFRESH_SECRET)
    options = {
        "bcrypt_rounds": 4,
        "lockout_threshold": 4,
        "default_password": DEFAULT_PASSWORD,
        "bootstrap_secret": BOOTSTRAP_SECRET,
        "reset_secret": RESET_SECRET,
    }
    options.update(auth_overrides)
    auth = AuthenticationService(db, user_store, tenant_store, tokens, **options)
    return Core(
        db=db,
        user_store=user_store,
        tenant_store=tenant_store,
        tokens=tokens,
        auth=auth,
        tenants=TenantService(db, tenant_store),
    )


def company_admin_claims(user_id: int, tenant_id: int, email: str = "admin@tenant.test") -> TokenClaims:
    return TokenClaims(user_id=user_id, email=email, tenant_id=tenant_id, roles=(COMPANY_ADMIN,))


# ---------------------------------------------------------------------------
# Function-scoped fixtures -- fresh DB per test
# ---------------------------------------------------------------------------


@pytest.fixture
def core() -> Generator[Core, None, None]:
    c = _make_core(f"test_core_{uuid.uuid4().hex}")
    yield c
    c.db.close()


@pytest.fixture
def super_admin(core: Core) -> TokenClaims:
    """Bootstrap the super admin and return claims equivalent to its access token."""
    user = core.auth.bootstrap_super_admin(
        BootstrapCommand(secret=BOOTSTRAP_SECRET, email=ADMIN_EMAIL, password=ADMIN_PASSWORD)
    )
    return TokenClaims(user_id=user.id, email=user.email, tenant_id=None, roles=(SUPER_ADMIN,))


@pytest.fixture
def acme(core: Core, super_admin: TokenClaims) -> Tenant:
    tenant, _ledger = core.tenants.create_tenant(
        super_admin, CreateTenantCommand(code="ACME", name="Acme Ltd", email="acme@x.com")
    )
    return tenant


@pytest.fixture
def globex(core: Core, super_admin: TokenClaims) -> Tenant:
    tenant, _ledger = core.tenants.create_tenant(
        super_admin, CreateTenantCommand(code="GLOBEX", name="Globex Corp", email="globex@x.com")
    )
    return tenant


# ---------------------------------------------------------------------------
# API fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


def _patch_lifespan(core: Core):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-built test Core into app.state so TestClient routes see an
    isolated test DB and known secrets rather than the configured ones.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.db = core.db
        app.state.user_store = core.user_store
        app.state.tenant_store = core.tenant_store
        app.state.tokens = core.tokens
        app.state.auth_service = core.auth
        app.state.tenant_service = core.tenants
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, Core], None, None]:
    """Yield (client, super_admin_token, core) for API integration tests.

    The super admin is bootstrapped through the service before the client
    starts and its access token is minted with the test TokenService. The
    limiter's in-memory counters are reset so login limits never leak
    between modules.
    """
    core = _make_core(f"test_api_{uuid.uuid4().hex}")
    admin = core.auth.bootstrap_super_admin(
        BootstrapCommand(secret=BOOTSTRAP_SECRET, email=ADMIN_EMAIL, password=ADMIN_PASSWORD)
    )
    token = core.tokens.issue_token_pair(
        TokenClaims(user_id=admin.id, email=admin.email, roles=(SUPER_ADMIN,))
    ).access_token

    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(core)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, token, core

    core.db.close()
