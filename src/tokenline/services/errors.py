"""Typed failures raised by the ticketing services.

API endpoints translate these into HTTP responses; nothing in the service
layer is expected to crash the process.
"""

from __future__ import annotations


class TicketError(RuntimeError):
    """Base exception raised for ticketing failures.

    Attributes:
        message: Human readable explanation suitable for end users.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(TicketError):
    """Raised when required identity or input is missing or malformed."""


class ConflictError(TicketError):
    """Raised when the request collides with existing state.

    The common case is a user who already holds an active ticket.
    """


class InvalidTransitionError(ConflictError):
    """Raised when a status change would leave a terminal state or go backwards."""


class NotFoundError(TicketError):
    """Raised when a queue is missing or inactive, or a ticket id is unknown."""


class RateLimitedError(TicketError):
    """Raised when a join is refused by admission control.

    Attributes:
        retry_after_seconds: Hint for when the caller may try again.
    """

    def __init__(self, message: str, retry_after_seconds: int | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class PersistenceError(TicketError):
    """Raised when the durable store fails for reasons other than a conflict."""
