# src/tokenline/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .queues import router as queues_router
from .system import router as system_router
from .tickets import router as tickets_router

__all__ = [
    "queues_router",
    "system_router",
    "tickets_router",
]
