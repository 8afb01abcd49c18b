"""Domain errors for the auth core.

Learn: Every failure the auth core can produce is one of these classes.
Each carries a stable numeric code (the `code` field of the error body)
and the HTTP status the API layer maps it to. Services raise them; only
api/error_handling.py turns them into responses.

Refresh failures (NotFoundError, TokenExpiredError) tell the client to log
in again. ForbiddenError means the identity is fine but the action is not
allowed. Anything with status 500 is internal and is never shown verbatim.
"""

from typing import Optional

# General
CODE_INTERNAL = 1000
CODE_NOT_FOUND = 1001
CODE_BAD_REQUEST = 1002

# Database
CODE_DB_QUERY = 2001

# Authentication
CODE_UNAUTHORIZED = 3000
CODE_FORBIDDEN = 3001
CODE_TOKEN_EXPIRED = 3002
CODE_INVALID_PASSWORD = 3003
CODE_FAILED_TO_HASH = 3004
CODE_PASSWORD_MISMATCH = 3005
CODE_PASSWORD_UNCHANGED = 3006

# Common
CODE_VALIDATION = 4001

INTERNAL_MESSAGE = "Internal Server Error"


class AuthError(Exception):
    """Base class for auth-core errors mapped to HTTP responses."""

    status_code: int = 400
    code: int = CODE_BAD_REQUEST
    default_message: str = "Bad request"

    def __init__(self, message: Optional[str] = None, *, code: Optional[int] = None):
        self.message = message or self.default_message
        super().__init__(self.message)
        if code is not None:
            self.code = code

    @property
    def is_internal(self) -> bool:
        return self.status_code >= 500


class NotFoundError(AuthError):
    """User or refresh token does not exist."""

    status_code = 404
    code = CODE_NOT_FOUND
    default_message = "Not found"


class InvalidCredentialsError(AuthError):
    status_code = 401
    code = CODE_INVALID_PASSWORD
    default_message = "Invalid credentials"


class TokenExpiredError(AuthError):
    """Refresh token is past its expiry."""

    status_code = 401
    code = CODE_TOKEN_EXPIRED
    default_message = "Refresh token has expired"


class InvalidTokenError(AuthError):
    """Access token is malformed, tampered with, or expired."""

    status_code = 401
    code = CODE_UNAUTHORIZED
    default_message = "Invalid token"


class PasswordMismatchError(AuthError):
    """New password rejected: confirmation differs, or it equals the old one."""

    status_code = 400
    code = CODE_PASSWORD_MISMATCH
    default_message = "New password and confirm password do not match"


class ForbiddenError(AuthError):
    status_code = 403
    code = CODE_FORBIDDEN
    default_message = "Forbidden"

    def __init__(self, message: Optional[str] = None, *, missing: tuple[str, ...] = ()):
        super().__init__(message)
        self.missing = missing


class SigningFailedError(AuthError):
    status_code = 500
    code = CODE_INTERNAL
    default_message = "Failed to sign access token"


class HashingFailedError(AuthError):
    status_code = 500
    code = CODE_FAILED_TO_HASH
    default_message = "Failed to hash password"


class PersistFailedError(AuthError):
    """The backing store was unavailable, failed, or timed out."""

    status_code = 500
    code = CODE_DB_QUERY
    default_message = "Storage operation failed"


class PermissionLookupError(AuthError):
    """Permissions could not be resolved. Not the same as being denied."""

    status_code = 500
    code = CODE_DB_QUERY
    default_message = "Failed to resolve permissions"
