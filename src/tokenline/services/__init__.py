# src/tokenline/services/__init__.py
"""Business logic services for the Tokenline service."""

from .errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    RateLimitedError,
    TicketError,
    ValidationError,
)
from .live_index import LiveQueueIndex
from .queue_service import QueueService, QueueStatus
from .rate_limit import AdmissionOutcome, RateLimitDecision, RateLimiter
from .ticket_service import TicketService

__all__ = [
    "AdmissionOutcome",
    "ConflictError",
    "InvalidTransitionError",
    "LiveQueueIndex",
    "NotFoundError",
    "PersistenceError",
    "QueueService",
    "QueueStatus",
    "RateLimitDecision",
    "RateLimitedError",
    "RateLimiter",
    "TicketError",
    "TicketService",
    "ValidationError",
]
