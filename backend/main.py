"""
Preview host FastAPI application.

Entry point for the API server.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.config import settings
from backend.routes import preview as preview_routes
from backend.routes import ws as ws_routes
from backend.services.preview_session import session_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.

    Handles startup and shutdown logic:
    - Log the active configuration
    - Flush and close every preview session on shutdown
    """
    logger.info(
        "preview host starting (environment=%s, template_generator=%s)",
        settings.ENVIRONMENT,
        settings.use_template_generator,
    )

    yield

    await session_registry.close_all()
    logger.info("preview sessions closed")


app = FastAPI(
    title="Preview Host",
    docs_url=None,
    redoc_url=None,
    lifespan=lifespan,
)

# Register routes
app.include_router(preview_routes.router)
app.include_router(ws_routes.router)


@app.get("/health")
async def health():
    """Health check endpoint for uptime monitoring."""
    return {"status": "ok", "sessions": len(session_registry)}
