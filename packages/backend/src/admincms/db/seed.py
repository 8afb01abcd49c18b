"""Default roles and permissions.

Learn: Seeding is idempotent — existing permissions, roles and grants are
looked up by their natural keys and left alone, so running `admincms seed`
twice changes nothing the second time.
"""

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from admincms.db.models import Permission, Role, RolePermission, User, UserRole
from admincms.db.repositories import RoleRepository

logger = structlog.get_logger()

CRUD_ACTIONS = ("index", "create", "update", "view", "delete")

DEFAULT_PERMISSIONS: list[tuple[str, str]] = (
    [("users", action) for action in CRUD_ACTIONS]
    + [("roles", action) for action in CRUD_ACTIONS]
    + [("settings", "view"), ("settings", "update")]
)

# role name → (display name, permission keys)
DEFAULT_ROLES: dict[str, tuple[str, list[str]]] = {
    "Admin": ("Administrator", [f"{r}:{a}" for r, a in DEFAULT_PERMISSIONS]),
    "User": (
        "Regular User",
        ["users:index", "users:view", "roles:index", "roles:view", "settings:view"],
    ),
}


async def seed_permissions(db: AsyncSession) -> dict[str, Permission]:
    result = await db.execute(select(Permission))
    existing = {p.key: p for p in result.scalars().all()}

    for resource, action in DEFAULT_PERMISSIONS:
        key = f"{resource}:{action}"
        if key not in existing:
            permission = Permission(resource=resource, action=action)
            db.add(permission)
            existing[key] = permission
    await db.flush()
    return existing


async def seed_roles(db: AsyncSession, permissions: dict[str, Permission]) -> dict[str, Role]:
    roles: dict[str, Role] = {}
    for name, (display_name, keys) in DEFAULT_ROLES.items():
        result = await db.execute(select(Role).where(Role.name == name))
        role = result.scalars().first()
        if role is None:
            role = Role(name=name, display_name=display_name)
            db.add(role)
            await db.flush()

        result = await db.execute(
            select(RolePermission.permission_id).where(RolePermission.role_id == role.id)
        )
        granted = set(result.scalars().all())
        for key in keys:
            permission = permissions[key]
            if permission.id not in granted:
                db.add(RolePermission(role_id=role.id, permission_id=permission.id))
        await db.flush()

        logger.info("seed.role", role=name, permissions=len(keys))
        roles[name] = role
    return roles


async def seed_defaults(db: AsyncSession) -> dict[str, Role]:
    """Create the default permissions and the Admin/User roles."""
    permissions = await seed_permissions(db)
    return await seed_roles(db, permissions)


async def ensure_user_with_role(
    db: AsyncSession,
    *,
    email: str,
    name: str,
    password_hash: str,
    role: Role,
) -> tuple[User, bool]:
    """Create the user if missing and grant `role`. Returns (user, created)."""
    result = await db.execute(select(User).where(User.email == email))
    user: Optional[User] = result.scalars().first()
    created = user is None
    if user is None:
        user = User(email=email, name=name, password_hash=password_hash)
        db.add(user)
        await db.flush()

    result = await db.execute(
        select(UserRole).where(UserRole.user_id == user.id, UserRole.role_id == role.id)
    )
    if result.scalars().first() is None:
        await RoleRepository(db).assign_role(user.id, role.id)
    return user, created
