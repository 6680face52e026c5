"""
FastAPI application entrypoint for the Compra Agil acquisition service.
"""

from __future__ import annotations

from fastapi import FastAPI

from compra_agil.api.routes import router as api_router
from compra_agil.core.config import get_settings
from compra_agil.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Compra Agil Acquisition Service",
        version="0.1.0",
        description="Token status, session health and scrape runs for Compra Agil listings.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
