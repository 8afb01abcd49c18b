"""JWT access token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
The access token is short-lived (60min) and carries only the user id.
It is verified from its signature alone — no database lookup, and no
revocation: a token stays valid until its `exp` even if the user's
refresh token is rotated elsewhere.

Refresh tokens are NOT JWTs here; they are opaque secrets stored in the
database (see services/refresh_token_service.py).
"""

import time
from dataclasses import dataclass
from typing import Callable

import jwt

from admincms.config import AuthConfig
from admincms.errors import InvalidTokenError, SigningFailedError

ACCESS_TOKEN_TYPE = "access"


@dataclass(frozen=True)
class IssuedToken:
    """A token string together with its absolute expiry (epoch seconds)."""

    token: str
    expires_at: int


@dataclass(frozen=True)
class AccessTokenClaims:
    subject: str
    issued_at: int
    expires_at: int


class AccessTokenIssuer:
    """Mints and verifies signed access tokens.

    Built once at startup from an AuthConfig and never mutated.
    """

    def __init__(self, config: AuthConfig, clock: Callable[[], float] = time.time):
        self._secret = config.jwt_secret
        self._algorithm = config.jwt_algorithm
        self._ttl = config.access_token_ttl_seconds
        self._clock = clock

    def issue(self, user_id: str) -> IssuedToken:
        """Create a JWT access token for a user."""
        now = int(self._clock())
        expires_at = now + self._ttl
        payload = {
            "sub": str(user_id),
            "type": ACCESS_TOKEN_TYPE,
            "iat": now,
            "exp": expires_at,
        }
        try:
            token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        except (jwt.PyJWTError, NotImplementedError, TypeError, ValueError) as e:
            raise SigningFailedError() from e
        return IssuedToken(token=token, expires_at=expires_at)

    def verify(self, token: str) -> AccessTokenClaims:
        """Verify and decode an access token.

        Raises InvalidTokenError on bad signature, malformed token,
        missing claims, wrong token type, or expiry.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={
                    "require": ["exp", "iat", "sub"],
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}") from e

        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise InvalidTokenError("Not an access token")

        # Expiry is checked against our clock rather than PyJWT's wall clock.
        try:
            expires_at = int(payload["exp"])
            issued_at = int(payload["iat"])
        except (TypeError, ValueError) as e:
            raise InvalidTokenError("Malformed token timestamps") from e
        if expires_at <= int(self._clock()):
            raise InvalidTokenError("Token has expired")

        return AccessTokenClaims(
            subject=str(payload["sub"]),
            issued_at=issued_at,
            expires_at=expires_at,
        )
