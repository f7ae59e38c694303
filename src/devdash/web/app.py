"""FastAPI application factory for the DevDash operator API."""

from __future__ import annotations

from fastapi import FastAPI

from devdash.config import Config
from devdash.web.routes import health_router, router


def create_app(config: Config, lifespan=None) -> FastAPI:
    """Build and return a configured FastAPI application."""
    app = FastAPI(title="DevDash", docs_url="/api/docs", lifespan=lifespan)
    app.state.config = config
    app.state.database_path = config.database_path
    app.include_router(health_router)
    app.include_router(router, prefix="/api/v1")
    return app
