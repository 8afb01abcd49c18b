"""Test fixtures — in-memory repositories and an HTTP client wired to them.

Learn: The auth services only talk to three small repositories, so unit
and API tests swap those for in-memory fakes that behave like the SQL
versions (same method names, same None-for-absent contract, rotation as a
compare-and-swap on the secret). No database is needed.

Failures are injected per operation: `memory_db.fail_on.add("rotate")`
makes the next rotate raise a SQLAlchemy OperationalError, exactly what a
dropped connection would look like to the services.

Tests that need real PostgreSQL live in test_repositories_pg.py and skip
themselves when the database is unreachable.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from admincms.auth.jwt import AccessTokenIssuer
from admincms.auth.password import PasswordHasher
from admincms.config import AuthConfig, Settings
from admincms.db.repositories import as_uuid
from admincms.services.permission_service import AuthorizationGate, PermissionResolver
from admincms.services.refresh_token_service import RefreshTokenService
from admincms.services.session_service import SessionService

TEST_JWT_SECRET = "test-secret-0123456789-abcdefghijklmnop"


# ═══════════════════════════════════════════════════════════
# In-memory rows
# ═══════════════════════════════════════════════════════════


@dataclass
class UserRow:
    email: str
    password_hash: str
    name: str = "Test User"
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class RefreshTokenRow:
    refresh_token: str
    user_id: uuid.UUID
    ip_address: str
    used_count: int
    expired_at: int
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class RoleRow:
    name: str
    display_name: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass
class PermissionRow:
    resource: str
    action: str
    id: uuid.UUID = field(default_factory=uuid.uuid4)


class MemoryDatabase:
    """Tables as Python collections, plus failure injection."""

    def __init__(self):
        self.users: dict[uuid.UUID, UserRow] = {}
        self.refresh_tokens: list[RefreshTokenRow] = []
        self.roles: dict[uuid.UUID, RoleRow] = {}
        self.permissions: dict[str, PermissionRow] = {}
        self.user_roles: set[tuple[uuid.UUID, uuid.UUID]] = set()
        self.role_permissions: set[tuple[uuid.UUID, uuid.UUID]] = set()
        self.fail_on: set[str] = set()
        self.delay: float = 0.0

    async def io(self, operation: str) -> None:
        """Yield to the loop like a real round-trip, then maybe fail."""
        if self.delay:
            await asyncio.sleep(self.delay)
        else:
            await asyncio.sleep(0)
        if operation in self.fail_on:
            raise OperationalError(operation, {}, ConnectionError("connection reset"))

    # ─── Builders ─────────────────────────────────────

    def add_user(self, email: str, password_hash: str, name: str = "Test User") -> UserRow:
        user = UserRow(email=email, password_hash=password_hash, name=name)
        self.users[user.id] = user
        return user

    def add_role(self, name: str, keys: list[str]) -> RoleRow:
        role = RoleRow(name=name, display_name=name.title())
        self.roles[role.id] = role
        for key in keys:
            resource, action = key.split(":")
            permission = self.permissions.get(key)
            if permission is None:
                permission = PermissionRow(resource=resource, action=action)
                self.permissions[key] = permission
            self.role_permissions.add((role.id, permission.id))
        return role

    def assign(self, user: UserRow, role: RoleRow) -> None:
        self.user_roles.add((user.id, role.id))

    def token_row(self, secret: str) -> Optional[RefreshTokenRow]:
        return next((t for t in self.refresh_tokens if t.refresh_token == secret), None)


class FakeUserRepository:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    async def find_by_email(self, email: str) -> Optional[UserRow]:
        await self.db.io("find_user")
        return next((u for u in self.db.users.values() if u.email == email), None)

    async def find_by_id(self, user_id) -> Optional[UserRow]:
        await self.db.io("find_user")
        uid = as_uuid(user_id)
        return self.db.users.get(uid) if uid else None

    async def update_password_hash(self, user_id, password_hash: str) -> None:
        await self.db.io("update_user")
        user = self.db.users.get(as_uuid(user_id))
        if user is not None:
            user.password_hash = password_hash


class FakeRoleRepository:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    async def list_role_ids_for_user(self, user_id) -> list[uuid.UUID]:
        await self.db.io("list_roles_for_user")
        uid = as_uuid(user_id)
        return [role_id for (u, role_id) in self.db.user_roles if u == uid]

    async def list_permissions_for_roles(self, role_ids) -> list[PermissionRow]:
        await self.db.io("list_permissions")
        wanted = set(role_ids)
        by_id = {p.id: p for p in self.db.permissions.values()}
        # One row per grant, like the SQL join, duplicates across roles included.
        return [by_id[p] for (r, p) in self.db.role_permissions if r in wanted]

    async def list_roles(self) -> list[RoleRow]:
        await self.db.io("list_roles")
        return sorted(self.db.roles.values(), key=lambda r: r.name)


class FakeRefreshTokenRepository:
    def __init__(self, db: MemoryDatabase):
        self.db = db

    async def insert(self, user_id, secret: str, ip_address: str, expired_at: int):
        await self.db.io("insert")
        row = RefreshTokenRow(
            refresh_token=secret,
            user_id=as_uuid(user_id),
            ip_address=ip_address,
            used_count=0,
            expired_at=expired_at,
        )
        self.db.refresh_tokens.append(row)
        return row

    async def find_by_secret(self, secret: str) -> Optional[RefreshTokenRow]:
        await self.db.io("find_token")
        return self.db.token_row(secret)

    async def rotate(self, old_secret, new_secret, ip_address, expired_at, now):
        await self.db.io("rotate")
        # Check-and-set with no await in between: atomic on the event loop.
        row = self.db.token_row(old_secret)
        if row is None or row.expired_at <= now:
            return None
        row.refresh_token = new_secret
        row.ip_address = ip_address
        row.used_count += 1
        row.expired_at = expired_at
        return row.user_id


class FakeSession:
    """Stands in for AsyncSession behind the real get_db: counts commits and rollbacks."""

    def __init__(self):
        self.commits = 0
        self.rollbacks = 0
        self.closed = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def close(self):
        self.closed += 1

    async def commit(self):
        self.commits += 1

    async def rollback(self):
        self.rollbacks += 1


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ═══════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════


@pytest.fixture()
def auth_config() -> AuthConfig:
    return AuthConfig(jwt_secret=TEST_JWT_SECRET, bcrypt_rounds=4, store_timeout_seconds=2.0)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def memory_db() -> MemoryDatabase:
    return MemoryDatabase()


@pytest.fixture()
def hasher():
    h = PasswordHasher(rounds=4, workers=2)
    yield h
    h.shutdown()


@pytest.fixture()
def issuer(auth_config, clock) -> AccessTokenIssuer:
    return AccessTokenIssuer(auth_config, clock=clock)


@pytest.fixture()
def user_repo(memory_db) -> FakeUserRepository:
    return FakeUserRepository(memory_db)


@pytest.fixture()
def refresh_repo(memory_db) -> FakeRefreshTokenRepository:
    return FakeRefreshTokenRepository(memory_db)


@pytest.fixture()
def refresh_tokens(refresh_repo, auth_config, clock) -> RefreshTokenService:
    return RefreshTokenService(refresh_repo, auth_config, clock=clock)


@pytest.fixture()
def session_service(user_repo, hasher, issuer, refresh_tokens, auth_config) -> SessionService:
    return SessionService(
        users=user_repo,
        hasher=hasher,
        issuer=issuer,
        refresh_tokens=refresh_tokens,
        store_timeout=auth_config.store_timeout_seconds,
    )


@pytest.fixture()
def gate(memory_db) -> AuthorizationGate:
    return AuthorizationGate(PermissionResolver(FakeRoleRepository(memory_db)))


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        jwt_secret=TEST_JWT_SECRET,
        bcrypt_rounds=4,
        password_hash_workers=2,
        environment="development",
    )


@pytest.fixture()
def app(test_settings):
    from admincms.main import create_app

    application = create_app(test_settings)
    yield application
    application.state.password_hasher.shutdown()


@pytest.fixture()
def fake_session() -> FakeSession:
    return FakeSession()


@pytest_asyncio.fixture()
async def client(app, memory_db, fake_session, monkeypatch):
    """HTTP client with repositories and the DB session faked.

    Learn: Only the data layer is faked. Token signing, password hashing,
    the services, the permission guard and error rendering are the real
    ones the app builds in create_app(). The real get_db still runs: its
    session factory hands out `fake_session`, so commit and rollback
    behaviour is the production one.
    """
    from admincms.auth.dependencies import (
        get_refresh_token_repository,
        get_role_repository,
        get_user_repository,
    )

    monkeypatch.setattr("admincms.db.engine.async_session_factory", lambda: fake_session)
    app.dependency_overrides[get_user_repository] = lambda: FakeUserRepository(memory_db)
    app.dependency_overrides[get_role_repository] = lambda: FakeRoleRepository(memory_db)
    app.dependency_overrides[get_refresh_token_repository] = (
        lambda: FakeRefreshTokenRepository(memory_db)
    )

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
