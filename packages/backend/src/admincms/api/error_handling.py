"""Map domain errors to HTTP responses.

Learn: Every error response has the body {"code": int, "message": str}.
Client errors keep their message. Internal errors (status >= 500) are
logged with the real cause and answered with a generic message, so no
SQL, key material or stack detail reaches the client.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import structlog

from admincms.errors import (
    CODE_VALIDATION,
    INTERNAL_MESSAGE,
    AuthError,
    InvalidTokenError,
)

logger = structlog.get_logger()


def _error_response(status_code: int, code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": code, "message": message},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        if exc.is_internal:
            logger.error(
                "auth.internal_error",
                path=request.url.path,
                method=request.method,
                error_type=type(exc).__name__,
                message=exc.message,
                cause=repr(exc.__cause__) if exc.__cause__ else None,
            )
            return _error_response(exc.status_code, exc.code, INTERNAL_MESSAGE)

        logger.info(
            "auth.request_rejected",
            path=request.url.path,
            status_code=exc.status_code,
            error_type=type(exc).__name__,
        )
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, InvalidTokenError) else None
        return _error_response(exc.status_code, exc.code, exc.message, headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg', 'invalid')}" if field else "Invalid request"
        return _error_response(400, CODE_VALIDATION, message)
