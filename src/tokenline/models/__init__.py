# src/tokenline/models/__init__.py
"""SQLAlchemy models for the Tokenline service."""

from .queue import Queue
from .token import ACTIVE_STATUSES, TERMINAL_STATUSES, Token, TokenStatus
from .user import User

__all__ = [
    "Queue",
    "Token", "TokenStatus", "ACTIVE_STATUSES", "TERMINAL_STATUSES",
    "User",
]
