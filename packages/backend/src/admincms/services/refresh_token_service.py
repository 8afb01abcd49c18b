"""Refresh token store — issue and rotate opaque refresh tokens.

Learn: A refresh token is a 60-character random secret, not a JWT. The
database row is the only thing that makes it valid:

    Active(secret_n, expiry_n) --rotate--> Active(secret_n+1, expiry_n+1)
    unknown / already-rotated secret   --> NotFoundError   (log in again)
    expired secret                     --> TokenExpiredError (log in again)

Rotation replaces the secret in place, so a secret can be exchanged exactly
once. Replaying an old one, or losing a race against a concurrent refresh
with the same secret, finds no row and fails NotFoundError. That is the
replay protection, not a bug to retry around.
"""

import secrets
import string
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import structlog

from admincms.auth.jwt import IssuedToken
from admincms.config import AuthConfig
from admincms.errors import NotFoundError, TokenExpiredError
from admincms.services.store import store_call

logger = structlog.get_logger()

SECRET_ALPHABET = string.ascii_letters + string.digits


class RefreshTokenRepo(Protocol):
    async def insert(
        self, user_id, secret: str, ip_address: str, expired_at: int
    ): ...

    async def find_by_secret(self, secret: str): ...

    async def rotate(
        self,
        old_secret: str,
        new_secret: str,
        ip_address: str,
        expired_at: int,
        now: int,
    ) -> Optional[uuid.UUID]: ...


@dataclass(frozen=True)
class RotatedToken:
    user_id: str
    token: str
    expires_at: int


def generate_secret(length: int) -> str:
    """Uniformly random alphanumeric secret of fixed length."""
    return "".join(secrets.choice(SECRET_ALPHABET) for _ in range(length))


class RefreshTokenService:
    """Creates refresh token rows and rotates them atomically."""

    def __init__(
        self,
        repo: RefreshTokenRepo,
        config: AuthConfig,
        clock: Callable[[], float] = time.time,
    ):
        self.repo = repo
        self._ttl = config.refresh_token_ttl_seconds
        self._length = config.refresh_token_length
        self._timeout = config.store_timeout_seconds
        self._clock = clock

    async def create(self, user_id: str, ip_address: str) -> IssuedToken:
        """Issue a new refresh token for a user (used_count 0, 30-day expiry)."""
        secret = generate_secret(self._length)
        expires_at = int(self._clock()) + self._ttl
        await store_call(
            self.repo.insert(user_id, secret, ip_address, expires_at),
            operation="refresh_token.insert",
            timeout=self._timeout,
        )
        return IssuedToken(token=secret, expires_at=expires_at)

    async def rotate(self, old_secret: str, ip_address: str) -> RotatedToken:
        """Exchange a live secret for a new one on the same row.

        Raises NotFoundError if no row holds old_secret (unknown, replayed,
        or rotated by a concurrent request first) and TokenExpiredError if
        the row exists but its expiry is <= now. Expired rows are kept.
        """
        now = int(self._clock())
        new_secret = generate_secret(self._length)
        expires_at = now + self._ttl

        owner = await store_call(
            self.repo.rotate(old_secret, new_secret, ip_address, expires_at, now),
            operation="refresh_token.rotate",
            timeout=self._timeout,
        )
        if owner is not None:
            return RotatedToken(user_id=str(owner), token=new_secret, expires_at=expires_at)

        # Nothing updated: tell "expired" apart from "not there".
        row = await store_call(
            self.repo.find_by_secret(old_secret),
            operation="refresh_token.find",
            timeout=self._timeout,
        )
        if row is None or row.expired_at > now:
            logger.warning("auth.refresh_token_not_found", ip_address=ip_address)
            raise NotFoundError("Refresh token not found")

        logger.info(
            "auth.refresh_token_expired",
            user_id=str(row.user_id),
            expired_at=row.expired_at,
        )
        raise TokenExpiredError()
