# src/tokenline/api/v1/endpoints/queues.py
"""Queue administration endpoints."""

from fastapi import APIRouter, status

from tokenline.schemas.queue import QueueCreate, QueueOut, QueueStatusOut
from tokenline.services import TicketError

from ..dependencies import CurrentUserIdDep, QueueServiceDep, to_http_exception

router = APIRouter(prefix="/queues", tags=["queues"])


@router.post("", response_model=QueueOut, status_code=status.HTTP_201_CREATED)
def create_queue(
    payload: QueueCreate,
    current_user_id: CurrentUserIdDep,
    service: QueueServiceDep,
) -> QueueOut:
    """Create a queue operated by the caller."""
    try:
        queue = service.create_queue(payload.name, payload.location, operator_id=current_user_id)
    except TicketError as exc:
        raise to_http_exception(exc) from exc
    return QueueOut.model_validate(queue)


@router.get("/{queue_id}", response_model=QueueOut)
def get_queue(queue_id: int, service: QueueServiceDep) -> QueueOut:
    try:
        queue = service.get_queue(queue_id)
    except TicketError as exc:
        raise to_http_exception(exc) from exc
    return QueueOut.model_validate(queue)


@router.post("/{queue_id}/activate", response_model=QueueOut)
def activate_queue(queue_id: int, service: QueueServiceDep) -> QueueOut:
    try:
        queue = service.set_active(queue_id, True)
    except TicketError as exc:
        raise to_http_exception(exc) from exc
    return QueueOut.model_validate(queue)


@router.post("/{queue_id}/deactivate", response_model=QueueOut)
def deactivate_queue(queue_id: int, service: QueueServiceDep) -> QueueOut:
    """Stop new joins; tickets already issued keep their place."""
    try:
        queue = service.set_active(queue_id, False)
    except TicketError as exc:
        raise to_http_exception(exc) from exc
    return QueueOut.model_validate(queue)


@router.get("/{queue_id}/status", response_model=QueueStatusOut)
def get_queue_status(queue_id: int, service: QueueServiceDep) -> QueueStatusOut:
    """Return now-serving and waiting count for kiosk displays."""
    try:
        snapshot = service.status(queue_id)
    except TicketError as exc:
        raise to_http_exception(exc) from exc
    return QueueStatusOut.model_validate(snapshot)
