"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to build the auth
services for a request and to extract/validate the caller's identity.

Process-wide, built once in create_app() and read from app.state:
- AuthConfig (frozen)
- AccessTokenIssuer (holds the signing key)
- PasswordHasher (owns the bcrypt thread pool)

Per request: repositories over the request's AsyncSession, and the
services composed from them.

Guards:
- get_current_user → 401 unless a valid Bearer access token is present
- require_permissions("users:index", ...) → 403 unless the user holds
  every listed permission
"""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from admincms.auth.jwt import AccessTokenIssuer
from admincms.auth.password import PasswordHasher
from admincms.config import AuthConfig
from admincms.db.engine import get_db
from admincms.db.repositories import (
    RefreshTokenRepository,
    RoleRepository,
    UserRepository,
)
from admincms.errors import InvalidTokenError
from admincms.services.permission_service import AuthorizationGate, PermissionResolver
from admincms.services.refresh_token_service import RefreshTokenService
from admincms.services.session_service import SessionService


class CurrentIdentity:
    """The authenticated user making the request, taken from a verified access token."""

    def __init__(self, user_id: str, expires_at: Optional[int] = None):
        self.user_id = user_id
        self.expires_at = expires_at


# ─── Process-wide components ────────────────────────────


def get_auth_config(request: Request) -> AuthConfig:
    return request.app.state.auth_config


def get_access_token_issuer(request: Request) -> AccessTokenIssuer:
    return request.app.state.access_token_issuer


def get_password_hasher(request: Request) -> PasswordHasher:
    return request.app.state.password_hasher


# ─── Per-request repositories and services ──────────────


def get_user_repository(db: AsyncSession = Depends(get_db)) -> UserRepository:
    return UserRepository(db)


def get_role_repository(db: AsyncSession = Depends(get_db)) -> RoleRepository:
    return RoleRepository(db)


def get_refresh_token_repository(
    db: AsyncSession = Depends(get_db),
) -> RefreshTokenRepository:
    return RefreshTokenRepository(db)


def get_session_service(
    users: UserRepository = Depends(get_user_repository),
    refresh_repo: RefreshTokenRepository = Depends(get_refresh_token_repository),
    hasher: PasswordHasher = Depends(get_password_hasher),
    issuer: AccessTokenIssuer = Depends(get_access_token_issuer),
    config: AuthConfig = Depends(get_auth_config),
) -> SessionService:
    return SessionService(
        users=users,
        hasher=hasher,
        issuer=issuer,
        refresh_tokens=RefreshTokenService(refresh_repo, config),
        store_timeout=config.store_timeout_seconds,
    )


def get_authorization_gate(
    roles: RoleRepository = Depends(get_role_repository),
    config: AuthConfig = Depends(get_auth_config),
) -> AuthorizationGate:
    return AuthorizationGate(PermissionResolver(roles, config.store_timeout_seconds))


# ─── Identity ───────────────────────────────────────────


async def get_current_user(
    authorization: Optional[str] = Header(None),
    issuer: AccessTokenIssuer = Depends(get_access_token_issuer),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if missing or invalid)."""
    if not authorization or not authorization.startswith("Bearer "):
        raise InvalidTokenError("Authorization header required")

    claims = issuer.verify(authorization[7:])
    return CurrentIdentity(user_id=claims.subject, expires_at=claims.expires_at)


def require_permissions(*required: str):
    """Build a dependency that admits only users holding all `required` keys.

    Usage:
        @router.get("/users", dependencies=[Depends(require_permissions("users:index"))])
    """

    async def permission_guard(
        identity: CurrentIdentity = Depends(get_current_user),
        gate: AuthorizationGate = Depends(get_authorization_gate),
    ) -> CurrentIdentity:
        await gate.require(identity.user_id, required)
        return identity

    return permission_guard
