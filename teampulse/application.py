"""Application factory that serves the API under ``/api`` for the browser client."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import create_app as create_api_app
from .config import Settings, load_settings
from .database import Database
from .errors import register_exception_handlers

logger = logging.getLogger("teampulse.application")


def create_application(
    *,
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """Create the combined ASGI application."""

    settings = settings or load_settings()
    database = database or Database(settings.database_path)
    database.initialize()

    api_app = create_api_app(database=database, settings=settings, initialize_database=False)

    app = FastAPI(
        title="Team Pulse",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.database = database
    app.state.api = api_app
    app.state.settings = settings

    register_exception_handlers(app)
    app.mount("/api", api_app)

    logger.info("Team Pulse API configured with database at %s", settings.database_path)
    return app


__all__ = ["create_application"]
