"""Application factory and context for the session service.

The FastAPI app is created by a factory to avoid import-time side effects.
Runtime state lives in an AppContext attached as ``app.state.context``, so
each test can build an app around its own store.

Usage:
------
    # Production (settings from environment)
    app = create_app()

    # Testing
    app = create_app(context=AppContext(store=SessionStore(tmp_path)))
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from replay_server.logging_config import configure_logging
from replay_server.session_store import SessionStore

SERVICE_VERSION = "1.0.0"


@dataclass
class AppContext:
    """Runtime context holding all application state."""

    store: SessionStore = field(default_factory=SessionStore)

    # Configuration
    production_mode: bool = field(
        default_factory=lambda: os.getenv("PRODUCTION", "false").lower() == "true"
    )
    allowed_origins: list = field(
        default_factory=lambda: os.getenv("ALLOWED_ORIGINS", "*").split(",")
    )

    # Timing
    server_start_time: float = field(default_factory=time.time)

    # Logging
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("replay.server"))


def create_app(
    *,
    data_dir: Optional[str] = None,
    production_mode: Optional[bool] = None,
    context: Optional[AppContext] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        data_dir: Override the session directory (default: REPLAY_DATA_DIR env var)
        production_mode: Override production mode (default: PRODUCTION env var)
        context: Pre-configured AppContext (for testing). If None, creates a new one.

    Returns:
        Configured FastAPI application with context attached as app.state.context
    """
    logger = configure_logging()

    if context is None:
        context = AppContext()
    if data_dir is not None:
        context.store = SessionStore(data_dir)
    if production_mode is not None:
        context.production_mode = production_mode
    context.logger = logger

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ctx = app.state.context
        ctx.logger.info("Session store at %s", ctx.store.data_dir)
        yield
        ctx.logger.info("LIFESPAN: Received shutdown signal")

    app = FastAPI(
        title="Session Replay API",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url=None if context.production_mode else "/docs",
        redoc_url=None if context.production_mode else "/redoc",
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=context.allowed_origins if context.production_mode else ["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    _setup_routers(app, context)

    @app.get("/api/health")
    async def health():
        return {
            "status": "ok",
            "version": SERVICE_VERSION,
            "uptime_seconds": time.time() - context.server_start_time,
        }

    return app


def _setup_routers(app: FastAPI, ctx: AppContext) -> None:
    """Setup and include all API routers."""
    from replay_server.routers.sessions import setup_sessions_router

    app.include_router(setup_sessions_router(ctx.store))
    ctx.logger.debug("API routers configured")
