# src/tokenline/main.py
"""Main entry point for the Tokenline application."""

from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tokenline.api.v1 import queues_router, system_router, tickets_router
from tokenline.core.settings import settings
from tokenline.db.cache import close_cache, init_cache

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Tokenline API",
    description="Sequential service tickets for physical queues",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Include API routers
app.include_router(tickets_router, prefix="/api/v1")
app.include_router(queues_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup() -> None:
    cache = init_cache()
    # The readiness probe is a blocking PING.
    if not await asyncio.to_thread(cache.is_ready):
        logger.warning("Starting without cache; rate limiting and live index are degraded")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    close_cache()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": "Tokenline API",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("tokenline.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
