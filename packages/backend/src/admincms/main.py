"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. The signing key, password hasher and auth config are built
here, once, and parked on app.state; request dependencies read them
from there. Lifespan only handles shutdown (thread pool, DB engine).
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from admincms import __version__
from admincms.api import api_router
from admincms.api.error_handling import register_exception_handlers
from admincms.auth.jwt import AccessTokenIssuer
from admincms.auth.password import PasswordHasher
from admincms.config import AuthConfig, Settings, settings as default_settings
from admincms.logging import configure_logging
from admincms.middleware.request_id import RequestIdMiddleware

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        "admincms.starting",
        version=__version__,
        environment=app.state.settings.environment,
        port=app.state.settings.port,
    )

    yield

    logger.info("admincms.shutdown")
    app.state.password_hasher.shutdown()

    from admincms.db.engine import engine
    await engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or default_settings
    configure_logging(settings.log_level, development=settings.environment == "development")

    app = FastAPI(
        title="admincms",
        description="Administrative CMS backend — authentication and role-based authorization",
        version=__version__,
        lifespan=lifespan,
    )

    auth_config = AuthConfig.from_settings(settings)
    app.state.settings = settings
    app.state.auth_config = auth_config
    app.state.access_token_issuer = AccessTokenIssuer(auth_config)
    app.state.password_hasher = PasswordHasher(
        rounds=auth_config.bcrypt_rounds, workers=settings.password_hash_workers
    )

    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → CORS → handler
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: admincms.main:app)
app = create_app()
