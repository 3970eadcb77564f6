# src/tokenline/api/v1/endpoints/tickets.py
"""Ticket endpoints: join a queue, follow and change a ticket."""

from fastapi import APIRouter, HTTPException, status

from tokenline.schemas.ticket import (
    ActiveTicketOut,
    TicketOut,
    TicketPositionOut,
    TicketStatusUpdate,
)
from tokenline.services import TicketError

from ..dependencies import CurrentUserIdDep, TicketServiceDep, to_http_exception

router = APIRouter(tags=["tickets"])


@router.post(
    "/queues/{queue_id}/tickets",
    response_model=TicketOut,
    status_code=status.HTTP_201_CREATED,
)
def issue_ticket(
    queue_id: int,
    current_user_id: CurrentUserIdDep,
    service: TicketServiceDep,
) -> TicketOut:
    """Join a queue and receive the next ticket.

    Args:
        queue_id: Queue to join
        current_user_id: Caller identity forwarded by the gateway
        service: Ticket service bound to this request

    Returns:
        The issued ticket

    Raises:
        HTTPException: 400 without identity, 404 for a missing or inactive
            queue, 409 if the caller already holds a ticket, 429 when rate
            limited (with a Retry-After header)
    """
    try:
        token = service.issue_ticket(queue_id, current_user_id)
    except TicketError as exc:
        raise to_http_exception(exc) from exc
    return TicketOut.model_validate(token)


@router.get("/tickets/me", response_model=ActiveTicketOut)
def get_my_ticket(current_user_id: CurrentUserIdDep, service: TicketServiceDep) -> ActiveTicketOut:
    """Return the caller's active ticket and its position."""
    if current_user_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-User-Id is required")
    try:
        token = service.active_ticket_for(current_user_id)
        if token is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="You are not in a queue"
            )
        position = service.position_of(token.id)
    except TicketError as exc:
        raise to_http_exception(exc) from exc
    return ActiveTicketOut.model_validate(
        {**TicketOut.model_validate(token).model_dump(), "position": position}
    )


@router.delete("/tickets/me", response_model=TicketOut)
def leave_queue(current_user_id: CurrentUserIdDep, service: TicketServiceDep) -> TicketOut:
    """Cancel the caller's active ticket."""
    try:
        token = service.leave_queue(current_user_id)
    except TicketError as exc:
        raise to_http_exception(exc) from exc
    return TicketOut.model_validate(token)


@router.patch("/tickets/{ticket_id}", response_model=TicketOut)
def update_ticket_status(
    ticket_id: int,
    payload: TicketStatusUpdate,
    service: TicketServiceDep,
) -> TicketOut:
    """Change a ticket's status (operator action)."""
    try:
        token = service.transition(ticket_id, payload.status)
    except TicketError as exc:
        raise to_http_exception(exc) from exc
    return TicketOut.model_validate(token)


@router.get("/tickets/{ticket_id}/position", response_model=TicketPositionOut)
def get_ticket_position(ticket_id: int, service: TicketServiceDep) -> TicketPositionOut:
    """Return a ticket's place among the waiting tickets of its queue."""
    try:
        token = service.get_ticket(ticket_id)
        position = service.position_of(ticket_id)
    except TicketError as exc:
        raise to_http_exception(exc) from exc
    return TicketPositionOut(
        ticket_id=token.id,
        queue_id=token.queue_id,
        status=token.token_status,
        position=position,
    )
