"""FastAPI application serving the stored health check results."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from healthcheck import __version__
from healthcheck.api.routes import health_router
from healthcheck.config import Settings
from healthcheck.store import StateStore

logger = logging.getLogger(__name__)


def create_app(settings: Settings, store: StateStore | None = None) -> FastAPI:
    """Create the read API bound to one settings object and state store."""
    app = FastAPI(title="Portal Health Checks", version=__version__)

    app.state.settings = settings
    app.state.store = store or StateStore(settings.state_dir)
    app.include_router(health_router)

    logger.info("Serving results from %s", app.state.store.path)
    return app
