"""Bounded calls into the database.

Learn: Every store call made by the auth services goes through
`store_call`, which applies the request's timeout and turns SQLAlchemy
failures and timeouts into one domain error. A cancelled/timed-out call
leaves the transaction to be rolled back by the session owner.
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError

from admincms.errors import AuthError, PersistFailedError

logger = structlog.get_logger()

T = TypeVar("T")


async def store_call(
    awaitable: Awaitable[T],
    *,
    operation: str,
    timeout: Optional[float] = None,
    error: type[AuthError] = PersistFailedError,
) -> T:
    """Await a repository call with a timeout, mapping store failures to `error`."""
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error("store.timeout", operation=operation, timeout=timeout)
        raise error() from e
    except SQLAlchemyError as e:
        logger.error("store.failed", operation=operation, error=str(e))
        raise error() from e
