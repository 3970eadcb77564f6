"""Data access helpers for durable queue and ticket records."""

from .queue_repo import QueueRepository
from .token_repo import TokenRepository

__all__ = ["QueueRepository", "TokenRepository"]
