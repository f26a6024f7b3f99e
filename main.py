"""
authflow Entry Point.

Bootstraps the dependency graph via constructor injection, opens the
client on the given URL (typically the verification link from the
email) and runs the session flow until interrupted.  Every subsystem is
wired here; no module-level globals.

Usage::

    python main.py "http://localhost:5173/auth/callback?code=..."
"""

from __future__ import annotations

import asyncio
import sys
import traceback
from typing import Optional

from authflow.config import get_config
from authflow.database import SupabaseManager
from authflow.logger import StructuredLogger, get_logger
from authflow.providers.identity_provider import SupabaseIdentityProvider
from authflow.repositories.profile_repository import SupabaseProfileRepository
from authflow.routes import LANDING_ROUTE
from authflow.services import create_services
from authflow.ui.app_shell import AppShell
from authflow.ui.navigation import HistoryNavigator


async def run(initial_url: str) -> None:
    """Wire dependencies, boot the shell and keep the loop alive."""
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting authflow at %s", initial_url)

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Supabase client (auth + PostgREST share one client)
    # ------------------------------------------------------------------
    db = SupabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        logger=StructuredLogger(name="database", config=config),
    )
    await db.connect()

    # ------------------------------------------------------------------
    # 3. Adapters
    # ------------------------------------------------------------------
    provider = SupabaseIdentityProvider(
        db=db,
        redirect_url=config.callback_url,
        logger=get_logger("identity_provider"),
    )
    profiles = SupabaseProfileRepository(
        db=db,
        logger=get_logger("profiles"),
        table=config.PROFILES_TABLE,
    )

    # ------------------------------------------------------------------
    # 4. Navigation + service container (single composition root)
    # ------------------------------------------------------------------
    navigator = HistoryNavigator(logger=get_logger("navigation"), initial_url=initial_url)
    services = create_services(
        provider=provider,
        profiles=profiles,
        navigator=navigator,
        config=config,
    )

    # ------------------------------------------------------------------
    # 5. Shell (runs until cancelled)
    # ------------------------------------------------------------------
    shell = AppShell(
        config=config,
        services=services,
        provider=provider,
        navigator=navigator,
        logger=get_logger("ui"),
    )
    try:
        await shell.boot()
        await asyncio.Event().wait()
    finally:
        await shell.shutdown()
        logger.info("authflow shut down.")


def main(argv: Optional[list[str]] = None) -> None:
    """Application entry point."""
    args = sys.argv[1:] if argv is None else argv
    initial_url = args[0] if args else LANDING_ROUTE
    asyncio.run(run(initial_url))


def _show_fatal_error(exc: BaseException) -> None:
    """Report a fatal error on stderr so it is never swallowed."""
    detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    sys.stderr.write(f"FATAL: {type(exc).__name__}: {exc}\n{detail}")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        _show_fatal_error(exc)
        sys.exit(1)
