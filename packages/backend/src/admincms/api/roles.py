"""Roles API — read-only role listing behind the permission gate.

Learn: The guard runs as a route dependency, before the handler body:
no valid token → 401, token but no "roles:index" → 403.
"""

from fastapi import APIRouter, Depends

from admincms.auth.dependencies import get_role_repository, require_permissions
from admincms.db.repositories import RoleRepository
from admincms.schemas.auth import ErrorBody, RoleRead
from admincms.services.store import store_call

router = APIRouter()


@router.get(
    "/roles",
    response_model=list[RoleRead],
    responses={code: {"model": ErrorBody} for code in (401, 403, 500)},
    dependencies=[Depends(require_permissions("roles:index"))],
)
async def list_roles(roles: RoleRepository = Depends(get_role_repository)):
    """List all roles."""
    return await store_call(roles.list_roles(), operation="roles.list")
