"""Portraitdex API - Main Application."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from portraitdex_core.api.routes import portraits as portraits_routes
from portraitdex_core.api.routes import status as status_routes
from portraitdex_core.config import get_settings
from portraitdex_core.observability.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    app.state.settings = settings
    logger.info("Portraitdex API started")
    yield


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Portraitdex API",
        description="Gallery of on-chain portrait identities",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(portraits_routes.router)
    app.include_router(status_routes.router)

    @app.get("/healthz")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"ok": True, "service": "portraitdex-core"}

    @app.get("/")
    async def root() -> dict:
        """Root endpoint."""
        return {
            "name": "Portraitdex API",
            "version": "0.1.0",
            "status": "running",
        }

    return app


app = create_app()
