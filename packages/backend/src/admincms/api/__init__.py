"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Health, login and refresh are open. Everything else authenticates
through its own dependencies (get_current_user / require_permissions),
so the permission each route needs is declared next to the route.
"""

from fastapi import APIRouter

from admincms.api.auth import router as auth_router
from admincms.api.health import router as health_router
from admincms.api.roles import router as roles_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(roles_router, tags=["roles"])
