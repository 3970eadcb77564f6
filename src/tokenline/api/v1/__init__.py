# src/tokenline/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import queues_router, system_router, tickets_router

__all__ = [
    "queues_router",
    "system_router",
    "tickets_router",
]
