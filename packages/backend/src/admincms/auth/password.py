"""Password hashing utilities.

Learn: Uses bcrypt for secure password hashing. bcrypt automatically
handles salting and is resistant to rainbow table attacks. The work
factor is configurable (ADMINCMS_BCRYPT_ROUNDS, default 10); every +1
doubles the cost.

bcrypt is CPU-bound and deliberately slow. On an asyncio server that would
stall every other request, so the *_async variants run the hash on a
dedicated thread pool owned by the hasher.
"""

import asyncio
import secrets
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import bcrypt

from admincms.errors import HashingFailedError

# bcrypt only looks at the first 72 bytes of input
BCRYPT_MAX_BYTES = 72


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class PasswordHasher:
    """Hash and verify passwords with bcrypt."""

    def __init__(self, rounds: int = 10, workers: int = 4):
        self.rounds = rounds
        self._workers = workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._dummy_hash: Optional[str] = None

    def hash(self, password: str) -> str:
        """Hash a password with a fresh random salt.

        Raises HashingFailedError when the configured cost is outside
        what bcrypt accepts (4..31).
        """
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
        except ValueError as e:
            raise HashingFailedError(f"Invalid bcrypt cost {self.rounds}") from e
        return bcrypt.hashpw(_encode(password), salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Check a password against a stored hash. Never raises on mismatch."""
        if not password_hash:
            return False
        try:
            return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
        except (ValueError, TypeError):
            return False

    # ─── Off-loop variants ───────────────────────────────

    async def hash_async(self, password: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._get_executor(), self.hash, password)

    async def verify_async(self, password: str, password_hash: str) -> bool:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._get_executor(), self.verify, password, password_hash
        )

    async def verify_absent_async(self, password: str) -> bool:
        """Spend one verify against a throwaway hash, then return False.

        Used when the account does not exist, so an unknown email costs
        the same bcrypt work as a wrong password.
        """
        if self._dummy_hash is None:
            self._dummy_hash = await self.hash_async(secrets.token_urlsafe(16))
        await self.verify_async(password, self._dummy_hash)
        return False

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._workers, thread_name_prefix="password-hash"
            )
        return self._executor

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
