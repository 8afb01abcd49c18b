"""admincms CLI — database setup and operator helpers.

Usage:
    admincms init-db                                  # Create all tables
    admincms seed                                     # Default permissions + Admin/User roles
    admincms seed --admin-email a@b.com               # ...and an admin user (prompts for password)
    admincms hash-password                            # Print a bcrypt hash for a password
"""

from __future__ import annotations

import asyncio
import concurrent.futures
from typing import Optional

import click

from admincms.config import settings

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _hasher():
    from admincms.auth.password import PasswordHasher

    return PasswordHasher(rounds=settings.bcrypt_rounds, workers=1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="admincms")
def main():
    """admincms — database setup and auth administration."""


@main.command("init-db")
def init_db():
    """Create all tables defined by the ORM models."""
    _run(_init_db_impl())
    click.secho("Tables created", fg="green")


async def _init_db_impl():
    from admincms.db.engine import engine
    from admincms.db.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


@main.command()
@click.option("--admin-email", help="Also create (or grant Admin to) this user")
@click.option("--admin-name", default="Administrator", show_default=True)
@click.option("--admin-password", help="Admin password (prompted if omitted)")
def seed(admin_email: Optional[str], admin_name: str, admin_password: Optional[str]):
    """Seed default permissions and the Admin/User roles."""
    if admin_email and not admin_password:
        admin_password = click.prompt(
            "Admin password", hide_input=True, confirmation_prompt=True
        )
    _run(_seed_impl(admin_email, admin_name, admin_password))


async def _seed_impl(
    admin_email: Optional[str], admin_name: str, admin_password: Optional[str]
):
    from admincms.db.engine import async_session_factory, engine
    from admincms.db.seed import ensure_user_with_role, seed_defaults

    try:
        async with async_session_factory() as db:
            roles = await seed_defaults(db)
            click.echo(f"Roles: {', '.join(sorted(roles))}")

            if admin_email:
                hasher = _hasher()
                user, created = await ensure_user_with_role(
                    db,
                    email=admin_email,
                    name=admin_name,
                    password_hash=hasher.hash(admin_password),
                    role=roles["Admin"],
                )
                state = "created" if created else "already existed"
                click.echo(f"Admin user {user.email} {state}")

            await db.commit()
    finally:
        await engine.dispose()
    click.secho("Seed complete", fg="green")


@main.command("hash-password")
@click.password_option()
def hash_password(password: str):
    """Print a bcrypt hash for PASSWORD."""
    click.echo(_hasher().hash(password))


if __name__ == "__main__":
    main()
