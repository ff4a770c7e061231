"""HTTP server for pkgtracker.

Serves the assignment/mark listing consumed by the web frontend and the
completion endpoint hit by packagers' tooling:

    GET /pkg                               # workList + markList
    GET /delete/{pkgname}/{status}?token=  # run the completion workflow

A module-level ``_ctx`` (store, notifier, secret) is set at startup and
injected via ``Depends(_get_context)``; tests set it directly.

Usage:
    pkgtracker serve                  # Listens on localhost:8380
    pkgtracker serve --port 9000      # Custom port
"""

from __future__ import annotations

import logging
from typing import Any

from pkgtracker.core import DB_FILENAME, PackageDB, find_tracker_root, resolve_settings
from pkgtracker.logging import setup_logging
from pkgtracker.notifier import TelegramNotifier
from pkgtracker.workflow import TrackerContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state, set by main() or test fixtures
# ---------------------------------------------------------------------------

_ctx: TrackerContext | None = None


def _get_context() -> TrackerContext:
    """Return the active tracker context."""
    from fastapi import HTTPException

    if _ctx is None:
        raise HTTPException(status_code=500, detail="Tracker not initialized")
    return _ctx


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> Any:
    """Create the FastAPI application with all package endpoints."""
    import contextlib
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

    from pkgtracker.dashboard_routes import packages

    @contextlib.asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        if _ctx is not None and isinstance(_ctx.notifier, TelegramNotifier):
            await _ctx.notifier.aclose()

    app = FastAPI(title="pkgtracker", docs_url=None, redoc_url=None, lifespan=_lifespan)
    app.include_router(packages.create_router())
    return app


def build_context(*, check_same_thread: bool = True) -> TrackerContext:
    """Discover .pkgtracker/ and wire the SQLite store and Telegram notifier.

    Raises ``FileNotFoundError`` outside a tracker directory and
    ``ValueError`` when the bot token or chat id is not configured.
    """
    tracker_dir = find_tracker_root()
    settings = resolve_settings(tracker_dir)
    if not settings.bot_token or not settings.chat_id:
        msg = "bot_token and chat_id must be set in config.json or PKGTRACKER_BOT_TOKEN / PKGTRACKER_CHAT_ID"
        raise ValueError(msg)
    if not settings.token:
        logger.warning("No token configured; every completion request will be rejected")

    setup_logging(tracker_dir)
    db = PackageDB(tracker_dir / DB_FILENAME, check_same_thread=check_same_thread)
    db.initialize()
    notifier = TelegramNotifier(settings.bot_token, settings.chat_id, api_base=settings.api_base)
    return TrackerContext(store=db, notifier=notifier, token=settings.token)


def main(port: int | None = None, *, host: str = "127.0.0.1") -> None:
    """Start the HTTP server for the tracker found from the cwd."""
    import uvicorn

    global _ctx

    _ctx = build_context(check_same_thread=False)
    if port is None:
        port = resolve_settings(find_tracker_root()).port

    app = create_app()
    logger.info("Serving pkgtracker on %s:%d", host, port)
    print(f"pkgtracker: http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level="warning")
