"""Data access for the auth core.

Learn: Thin async repositories over one AsyncSession. They return ORM rows
or None and let SQLAlchemy errors propagate; translating "absent" and
"store failed" into domain errors is the services' job.

None of them commit. The session's owner (the route, via get_db, or the
CLI) commits once the whole operation has succeeded.
"""

import uuid
from typing import Optional, Sequence, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from admincms.db.models import (
    Permission,
    RefreshToken,
    Role,
    RolePermission,
    User,
    UserRole,
)

UserId = Union[str, uuid.UUID]


def as_uuid(value: UserId) -> Optional[uuid.UUID]:
    """Parse a user/role id, returning None for anything that is not a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class UserRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def find_by_id(self, user_id: UserId) -> Optional[User]:
        uid = as_uuid(user_id)
        if uid is None:
            return None
        return await self.db.get(User, uid)

    async def create(self, name: str, email: str, password_hash: str) -> User:
        user = User(name=name, email=email, password_hash=password_hash)
        self.db.add(user)
        await self.db.flush()
        return user

    async def update_password_hash(self, user_id: UserId, password_hash: str) -> None:
        await self.db.execute(
            update(User)
            .where(User.id == as_uuid(user_id))
            .values(password_hash=password_hash)
            .execution_options(synchronize_session=False)
        )


class RoleRepository:
    """Role and permission lookups as flat queries (no relationship loading)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_role_ids_for_user(self, user_id: UserId) -> list[uuid.UUID]:
        uid = as_uuid(user_id)
        if uid is None:
            return []
        result = await self.db.execute(
            select(UserRole.role_id).where(UserRole.user_id == uid)
        )
        return list(result.scalars().all())

    async def list_permissions_for_roles(
        self, role_ids: Sequence[uuid.UUID]
    ) -> list[Permission]:
        if not role_ids:
            return []
        q = (
            select(Permission)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .where(RolePermission.role_id.in_(list(role_ids)))
        )
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def list_roles(self) -> list[Role]:
        result = await self.db.execute(select(Role).order_by(Role.name))
        return list(result.scalars().all())

    async def assign_role(self, user_id: UserId, role_id: uuid.UUID) -> None:
        self.db.add(UserRole(user_id=as_uuid(user_id), role_id=role_id))
        await self.db.flush()


class RefreshTokenRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def insert(
        self, user_id: UserId, secret: str, ip_address: str, expired_at: int
    ) -> RefreshToken:
        token = RefreshToken(
            refresh_token=secret,
            user_id=as_uuid(user_id),
            ip_address=ip_address,
            used_count=0,
            expired_at=expired_at,
        )
        self.db.add(token)
        await self.db.flush()
        return token

    async def find_by_secret(self, secret: str) -> Optional[RefreshToken]:
        result = await self.db.execute(
            select(RefreshToken).where(RefreshToken.refresh_token == secret)
        )
        return result.scalars().first()

    async def rotate(
        self,
        old_secret: str,
        new_secret: str,
        ip_address: str,
        expired_at: int,
        now: int,
    ) -> Optional[uuid.UUID]:
        """Swap old_secret for new_secret in one conditional UPDATE.

        Learn: The WHERE clause is the compare-and-swap. Two requests racing
        on the same old secret both issue this statement; PostgreSQL's row
        lock makes the second one wait, re-check the WHERE against the
        committed row, and match nothing. Returns the owner's id, or None
        when no live row carried old_secret.
        """
        stmt = (
            update(RefreshToken)
            .where(
                RefreshToken.refresh_token == old_secret,
                RefreshToken.expired_at > now,
            )
            .values(
                refresh_token=new_secret,
                ip_address=ip_address,
                used_count=RefreshToken.used_count + 1,
                expired_at=expired_at,
            )
            .returning(RefreshToken.user_id)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
