"""
SiteServe FastAPI application.

Entry point for the page server.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from siteserve.config import settings
from siteserve.routes import collections as collection_routes
from siteserve.routes import pages as pages_routes


def create_app() -> FastAPI:
    app = FastAPI(
        title="SiteServe",
        docs_url=None if settings.ENVIRONMENT == "production" else "/docs",
        redoc_url=None,
    )

    # Register routes
    app.include_router(pages_routes.router)
    app.include_router(collection_routes.router)

    @app.get("/health")
    async def health():
        """Health check endpoint for uptime monitoring."""
        return {"status": "ok"}

    return app


logging.basicConfig(level=logging.DEBUG if settings.ENVIRONMENT == "development" else logging.INFO)

app = create_app()
