"""Session service — login and refresh orchestration.

Learn: A "session" is the pair of tokens handed to the client:
- access token: signed JWT, 1 hour, verified without the database
- refresh token: opaque secret, 30 days, one database row, rotated on use

login:   find user by email → check password → sign access token
         → create refresh token row
refresh: rotate refresh token row → load its owner → sign access token
change_password: check old password → rehash new one → store the hash

An unknown email still pays for one bcrypt verify, so timing does not
tell a missing account apart from a wrong password.

The service holds no state of its own. It only coordinates the password
hasher, the access token issuer and the refresh token store, all injected
through the constructor, and takes the client IP as a plain string so
nothing here depends on the HTTP framework.
"""

from dataclasses import dataclass
from typing import Optional, Protocol

import structlog

from admincms.auth.jwt import AccessTokenIssuer, IssuedToken
from admincms.auth.password import PasswordHasher
from admincms.errors import (
    CODE_PASSWORD_UNCHANGED,
    InvalidCredentialsError,
    NotFoundError,
    PasswordMismatchError,
    SigningFailedError,
)
from admincms.services.refresh_token_service import RefreshTokenService
from admincms.services.store import store_call

logger = structlog.get_logger()


class UserRepo(Protocol):
    async def find_by_email(self, email: str): ...

    async def find_by_id(self, user_id): ...

    async def update_password_hash(self, user_id, password_hash: str) -> None: ...


@dataclass(frozen=True)
class SessionResult:
    user_id: str
    access_token: IssuedToken
    refresh_token: IssuedToken


class SessionService:
    """Issues and renews token pairs."""

    def __init__(
        self,
        users: UserRepo,
        hasher: PasswordHasher,
        issuer: AccessTokenIssuer,
        refresh_tokens: RefreshTokenService,
        store_timeout: Optional[float] = None,
    ):
        self.users = users
        self.hasher = hasher
        self.issuer = issuer
        self.refresh_tokens = refresh_tokens
        self._timeout = store_timeout

    async def login(self, email: str, password: str, client_ip: str) -> SessionResult:
        """Verify credentials and issue a fresh access + refresh token pair.

        Raises NotFoundError (no such user), InvalidCredentialsError (wrong
        password), SigningFailedError, or the refresh store's errors.
        """
        user = await store_call(
            self.users.find_by_email(email),
            operation="user.find_by_email",
            timeout=self._timeout,
        )
        if user is None:
            await self.hasher.verify_absent_async(password)
            logger.info("auth.login_failed", reason="user_not_found")
            raise NotFoundError("User not found")

        if not await self.hasher.verify_async(password, user.password_hash):
            logger.info("auth.login_failed", reason="invalid_password", user_id=str(user.id))
            raise InvalidCredentialsError()

        user_id = str(user.id)
        access = self._issue_access_token(user_id)
        refresh = await self.refresh_tokens.create(user_id, client_ip)

        logger.info("auth.login_succeeded", user_id=user_id, ip_address=client_ip)
        return SessionResult(user_id=user_id, access_token=access, refresh_token=refresh)

    async def refresh(self, refresh_token: str, client_ip: str) -> SessionResult:
        """Rotate a refresh token and issue a new access token for its owner.

        NotFoundError / TokenExpiredError from the store are passed through
        unchanged: the client has to log in again. Never retried.
        """
        rotated = await self.refresh_tokens.rotate(refresh_token, client_ip)

        user = await store_call(
            self.users.find_by_id(rotated.user_id),
            operation="user.find_by_id",
            timeout=self._timeout,
        )
        if user is None:
            logger.warning("auth.refresh_user_missing", user_id=rotated.user_id)
            raise NotFoundError("User not found")

        user_id = str(user.id)
        access = self._issue_access_token(user_id)

        logger.info("auth.refresh_succeeded", user_id=user_id, ip_address=client_ip)
        return SessionResult(
            user_id=user_id,
            access_token=access,
            refresh_token=IssuedToken(token=rotated.token, expires_at=rotated.expires_at),
        )

    async def change_password(
        self,
        user_id: str,
        old_password: str,
        new_password: str,
        confirm_password: str,
    ) -> None:
        """Replace the user's password hash after checking the old password.

        Checks run in order: old password (InvalidCredentialsError), new equal
        to old, confirmation differs (both PasswordMismatchError). Issued
        tokens are left alone.
        """
        user = await store_call(
            self.users.find_by_id(user_id),
            operation="user.find_by_id",
            timeout=self._timeout,
        )
        if user is None:
            raise NotFoundError("User not found")

        if not await self.hasher.verify_async(old_password, user.password_hash):
            logger.info("auth.change_password_failed", reason="invalid_password", user_id=user_id)
            raise InvalidCredentialsError("Old password is incorrect")
        if new_password == old_password:
            raise PasswordMismatchError(
                "New password must be different from old password",
                code=CODE_PASSWORD_UNCHANGED,
            )
        if new_password != confirm_password:
            raise PasswordMismatchError()

        password_hash = await self.hasher.hash_async(new_password)
        await store_call(
            self.users.update_password_hash(user.id, password_hash),
            operation="user.update_password_hash",
            timeout=self._timeout,
        )
        logger.info("auth.password_changed", user_id=user_id)

    def _issue_access_token(self, user_id: str) -> IssuedToken:
        try:
            return self.issuer.issue(user_id)
        except SigningFailedError:
            logger.error("auth.signing_failed", user_id=user_id)
            raise
