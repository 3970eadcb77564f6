"""Shared API dependencies for caller identity and service wiring."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from tokenline.db.cache import CacheConnection, get_cache
from tokenline.db.session import get_db
from tokenline.services import (
    ConflictError,
    LiveQueueIndex,
    NotFoundError,
    PersistenceError,
    QueueService,
    RateLimitedError,
    RateLimiter,
    TicketError,
    TicketService,
    ValidationError,
)

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> int | None:
    """Return the caller's user id as forwarded by the authenticating gateway.

    A missing header yields None so the service layer reports the missing
    identity itself.

    Raises:
        HTTPException: If the header is present but not an integer id.
    """
    if x_user_id is None or not x_user_id.strip():
        return None
    try:
        return int(x_user_id)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Id must be an integer",
        ) from err


def get_cache_dep() -> CacheConnection:
    """Return the process-wide cache handle."""
    return get_cache()


CurrentUserIdDep = Annotated[int | None, Depends(get_current_user_id)]
CacheDep = Annotated[CacheConnection, Depends(get_cache_dep)]


def get_ticket_service(db: SessionDep, cache: CacheDep) -> TicketService:
    """Build a ticket service bound to the request's session."""
    return TicketService(db, RateLimiter(cache), LiveQueueIndex(cache))


def get_queue_service(db: SessionDep, cache: CacheDep) -> QueueService:
    """Build a queue service bound to the request's session."""
    return QueueService(db, LiveQueueIndex(cache))


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
QueueServiceDep = Annotated[QueueService, Depends(get_queue_service)]


def to_http_exception(exc: TicketError) -> HTTPException:
    """Translate a service failure into the matching HTTP error."""
    if isinstance(exc, RateLimitedError):
        headers = None
        detail: dict[str, object] = {"message": exc.message}
        if exc.retry_after_seconds is not None:
            headers = {"Retry-After": str(exc.retry_after_seconds)}
            detail["retry_after_seconds"] = exc.retry_after_seconds
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            headers=headers,
        )
    if isinstance(exc, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, ConflictError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(exc, PersistenceError):
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    else:  # pragma: no cover - every TicketError subclass is mapped above
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=exc.message)
