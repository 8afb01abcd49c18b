"""Auth API — login, token refresh, current user.

Learn: Routes for the session lifecycle:
- POST /login → email/password → access + refresh token
- POST /refresh-token → refresh token → new access token + rotated refresh token
- GET /auth/me → current user info and permission keys
- POST /change-password → old + new password → stored hash replaced

Routes stay thin: parse the body, pull the client IP off the request,
call SessionService, commit. Errors are domain exceptions rendered by
api/error_handling.py.
"""

import ipaddress
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from admincms.auth.dependencies import (
    CurrentIdentity,
    get_authorization_gate,
    get_current_user,
    get_session_service,
    get_user_repository,
)
from admincms.db.engine import get_db
from admincms.db.repositories import UserRepository
from admincms.errors import InvalidCredentialsError, NotFoundError
from admincms.schemas.auth import (
    ChangePasswordRequest,
    ErrorBody,
    LoginRequest,
    MeRead,
    MessageRead,
    RefreshRequest,
    SessionTokens,
)
from admincms.services.permission_service import AuthorizationGate
from admincms.services.session_service import SessionService
from admincms.services.store import store_call

router = APIRouter()

# Documented error bodies, rendered by api/error_handling.py
ERROR_RESPONSES = {
    400: {"model": ErrorBody},
    401: {"model": ErrorBody},
    404: {"model": ErrorBody},
    500: {"model": ErrorBody},
}


def _valid_ip(value: Optional[str]) -> Optional[str]:
    """Normalised address if `value` parses as IPv4/IPv6, else None."""
    if not value:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def client_ip(request: Request) -> str:
    """Best-effort client address: proxy headers first, then the peer.

    Header values the client controls are only used when they parse as an
    IP address; anything else falls through to the next source.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = _valid_ip(forwarded.split(",")[0])
        if ip:
            return ip
    ip = _valid_ip(request.headers.get("X-Real-IP"))
    if ip:
        return ip
    peer = _valid_ip(request.client.host) if request.client else None
    return peer or ""


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=SessionTokens, responses=ERROR_RESPONSES)
async def login(
    body: LoginRequest,
    request: Request,
    sessions: SessionService = Depends(get_session_service),
    db: AsyncSession = Depends(get_db),
):
    """Login with email and password → access + refresh tokens."""
    try:
        result = await sessions.login(body.email, body.password, client_ip(request))
    except (NotFoundError, InvalidCredentialsError) as e:
        # Same answer for unknown email and wrong password.
        raise InvalidCredentialsError() from e

    await store_call(db.commit(), operation="session.commit")
    return SessionTokens.from_result(result)


# ─── Refresh ────────────────────────────────────────────


@router.post("/refresh-token", response_model=SessionTokens, responses=ERROR_RESPONSES)
async def refresh_token(
    body: RefreshRequest,
    request: Request,
    sessions: SessionService = Depends(get_session_service),
    db: AsyncSession = Depends(get_db),
):
    """Exchange a refresh token for a new token pair. The old refresh token dies."""
    result = await sessions.refresh(body.refresh_token, client_ip(request))
    await store_call(db.commit(), operation="session.commit")
    return SessionTokens.from_result(result)


# ─── Current user ───────────────────────────────────────


@router.get("/auth/me", response_model=MeRead, responses=ERROR_RESPONSES)
async def get_me(
    identity: CurrentIdentity = Depends(get_current_user),
    users: UserRepository = Depends(get_user_repository),
    gate: AuthorizationGate = Depends(get_authorization_gate),
):
    """Get the current authenticated user's info and permission keys."""
    user = await store_call(users.find_by_id(identity.user_id), operation="user.find_by_id")
    if user is None:
        raise NotFoundError("User not found")

    permissions = await gate.resolver.resolve(identity.user_id)
    return MeRead(
        id=user.id,
        name=user.name,
        email=user.email,
        permissions=sorted(permissions),
    )


# ─── Change password ────────────────────────────────────


@router.post("/change-password", response_model=MessageRead, responses=ERROR_RESPONSES)
async def change_password(
    body: ChangePasswordRequest,
    identity: CurrentIdentity = Depends(get_current_user),
    sessions: SessionService = Depends(get_session_service),
    db: AsyncSession = Depends(get_db),
):
    """Change the current user's password. Existing tokens stay valid."""
    await sessions.change_password(
        identity.user_id, body.old_password, body.new_password, body.confirm_password
    )
    await store_call(db.commit(), operation="session.commit")
    return MessageRead(message="Password changed successfully")
