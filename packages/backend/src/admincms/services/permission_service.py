"""Permission resolution and the authorization gate.

Learn: A user's permissions are the union of the permissions of all of
their roles, keyed as "resource:action" (e.g. "users:index"). Resolution
is two flat queries — user → role ids, role ids → permission rows —
merged into a set, so the same permission granted by two roles counts once.

The gate requires EVERY key in the required set (AND, not OR).

Two different failures, kept apart on purpose:
- ForbiddenError (403): we know the user's permissions and a key is missing.
- PermissionLookupError (500): we could not find out. Never reported as
  a denial.
"""

import uuid
from typing import Iterable, Optional, Protocol, Sequence

import structlog

from admincms.errors import ForbiddenError, PermissionLookupError
from admincms.services.store import store_call

logger = structlog.get_logger()


class RoleRepo(Protocol):
    async def list_role_ids_for_user(self, user_id) -> list[uuid.UUID]: ...

    async def list_permissions_for_roles(self, role_ids: Sequence[uuid.UUID]) -> list: ...


def permission_key(resource: str, action: str) -> str:
    return f"{resource}:{action}"


class PermissionResolver:
    def __init__(self, roles: RoleRepo, store_timeout: Optional[float] = None):
        self.roles = roles
        self._timeout = store_timeout

    async def resolve(self, user_id: str) -> frozenset[str]:
        """Return every permission key granted to the user through any role."""
        role_ids = await store_call(
            self.roles.list_role_ids_for_user(user_id),
            operation="roles.for_user",
            timeout=self._timeout,
            error=PermissionLookupError,
        )
        if not role_ids:
            return frozenset()

        permissions = await store_call(
            self.roles.list_permissions_for_roles(list(set(role_ids))),
            operation="permissions.for_roles",
            timeout=self._timeout,
            error=PermissionLookupError,
        )
        return frozenset(permission_key(p.resource, p.action) for p in permissions)


class AuthorizationGate:
    """Checks a user's resolved permissions against a required set. Read-only."""

    def __init__(self, resolver: PermissionResolver):
        self.resolver = resolver

    async def missing(self, user_id: str, required: Iterable[str]) -> tuple[str, ...]:
        required = set(required)
        if not required:
            return ()
        granted = await self.resolver.resolve(user_id)
        return tuple(sorted(required - granted))

    async def authorize(self, user_id: str, required: Iterable[str]) -> bool:
        """True only if the user holds every required key."""
        return not await self.missing(user_id, required)

    async def require(self, user_id: str, required: Iterable[str]) -> None:
        """Raise ForbiddenError unless the user holds every required key."""
        missing = await self.missing(user_id, required)
        if missing:
            logger.info("auth.permission_denied", user_id=user_id, missing=list(missing))
            raise ForbiddenError(
                f"Missing permission: {', '.join(missing)}", missing=missing
            )
