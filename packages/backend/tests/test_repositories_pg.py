"""Repository tests against a real PostgreSQL.

Learn: Same isolation pattern as the API fixtures used to have: one engine
+ connection + outer transaction per test, the session joins it with
join_transaction_mode="create_savepoint", and everything is rolled back
afterwards.

The race test is the exception. Two independent sessions have to commit
for the row lock to matter, so it commits its rows and deletes them again.

Every test here skips when ADMINCMS_DATABASE_URL is unreachable.
"""

import asyncio
import time
import uuid

import pytest
import pytest_asyncio
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from admincms.config import settings
from admincms.db.models import Base, RefreshToken, User
from admincms.db.repositories import RefreshTokenRepository, RoleRepository, UserRepository
from admincms.db.seed import DEFAULT_ROLES, ensure_user_with_role, seed_defaults

NOW = int(time.time())
LATER = NOW + 30 * 24 * 60 * 60


@pytest_asyncio.fixture()
async def pg_engine():
    engine = create_async_engine(settings.database_url, echo=False)

    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    try:
        await asyncio.wait_for(create_tables(), timeout=3)
    except Exception as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL not available: {type(e).__name__}")

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(pg_engine):
    async with pg_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(
            bind=conn,
            expire_on_commit=False,
            join_transaction_mode="create_savepoint",
        )
        try:
            yield session
        finally:
            await session.close()
            await trans.rollback()


async def make_user(db, email=None) -> User:
    email = email or f"pg-{uuid.uuid4().hex[:8]}@example.com"
    return await UserRepository(db).create("PG User", email, "hash")


# ═══════════════════════════════════════════════════════════
# Users
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_user_lookup(db_session):
    user = await make_user(db_session)
    users = UserRepository(db_session)

    assert (await users.find_by_email(user.email)).id == user.id
    assert (await users.find_by_id(str(user.id))).email == user.email
    assert await users.find_by_email("missing@example.com") is None
    assert await users.find_by_id("not-a-uuid") is None


@pytest.mark.asyncio
async def test_update_password_hash(db_session):
    user = await make_user(db_session)
    users = UserRepository(db_session)

    await users.update_password_hash(str(user.id), "new-hash")
    await db_session.refresh(user)
    assert user.password_hash == "new-hash"


@pytest.mark.asyncio
async def test_email_is_unique(db_session):
    user = await make_user(db_session)
    with pytest.raises(IntegrityError):
        await make_user(db_session, email=user.email)


# ═══════════════════════════════════════════════════════════
# Refresh tokens
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_rotate_swaps_secret_in_place(db_session):
    user = await make_user(db_session)
    tokens = RefreshTokenRepository(db_session)
    row = await tokens.insert(user.id, "old-secret", "1.1.1.1", LATER)

    owner = await tokens.rotate("old-secret", "new-secret", "2.2.2.2", LATER + 60, NOW)
    assert owner == user.id

    assert await tokens.find_by_secret("old-secret") is None
    rotated = await tokens.find_by_secret("new-secret")
    await db_session.refresh(rotated)
    assert rotated.id == row.id
    assert rotated.used_count == 1
    assert rotated.ip_address == "2.2.2.2"
    assert rotated.expired_at == LATER + 60


@pytest.mark.asyncio
async def test_rotate_skips_expired_rows(db_session):
    user = await make_user(db_session)
    tokens = RefreshTokenRepository(db_session)
    await tokens.insert(user.id, "stale", "ip", NOW)

    assert await tokens.rotate("stale", "fresh", "ip", LATER, NOW) is None
    assert (await tokens.find_by_secret("stale")).expired_at == NOW


@pytest.mark.asyncio
async def test_rotate_unknown_secret(db_session):
    tokens = RefreshTokenRepository(db_session)
    assert await tokens.rotate("zzz", "new", "ip", LATER, NOW) is None


@pytest.mark.asyncio
async def test_concurrent_rotation_single_winner(pg_engine):
    """Two transactions rotate the same secret; exactly one UPDATE matches."""
    factory = async_sessionmaker(pg_engine, expire_on_commit=False)
    secret = f"race-{uuid.uuid4().hex}"

    async with factory() as setup:
        user = await make_user(setup)
        await RefreshTokenRepository(setup).insert(user.id, secret, "ip", LATER)
        await setup.commit()

    async def attempt(new_secret: str):
        async with factory() as session:
            owner = await RefreshTokenRepository(session).rotate(
                secret, new_secret, "ip", LATER, NOW
            )
            await session.commit()
            return owner

    try:
        results = await asyncio.gather(attempt("winner-a"), attempt("winner-b"))
        assert sorted(r is None for r in results) == [False, True]
    finally:
        async with factory() as cleanup:
            await cleanup.execute(delete(RefreshToken).where(RefreshToken.user_id == user.id))
            await cleanup.execute(delete(User).where(User.id == user.id))
            await cleanup.commit()


# ═══════════════════════════════════════════════════════════
# Roles and seeding
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_seed_is_idempotent_and_resolves_permissions(db_session):
    roles = await seed_defaults(db_session)
    again = await seed_defaults(db_session)
    assert {name: r.id for name, r in roles.items()} == {
        name: r.id for name, r in again.items()
    }

    user = await make_user(db_session)
    _, created = await ensure_user_with_role(
        db_session, email=user.email, name="ignored", password_hash="h", role=roles["User"]
    )
    assert created is False

    repo = RoleRepository(db_session)
    role_ids = await repo.list_role_ids_for_user(user.id)
    assert role_ids == [roles["User"].id]

    keys = {p.key for p in await repo.list_permissions_for_roles(role_ids)}
    assert keys == set(DEFAULT_ROLES["User"][1])


@pytest.mark.asyncio
async def test_permissions_for_no_roles(db_session):
    assert await RoleRepository(db_session).list_permissions_for_roles([]) == []
