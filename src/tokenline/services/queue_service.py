"""Queue administration: creation, activation and status snapshots."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tokenline.models.queue import Queue
from tokenline.repositories import QueueRepository, TokenRepository
from tokenline.services.errors import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from tokenline.services.live_index import LiveQueueIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueStatus:
    """Point-in-time view of a queue for kiosks and dashboards."""

    queue_id: int
    is_active: bool
    next_sequence: int
    waiting_count: int
    now_serving_ticket_id: int | None
    now_serving_seq: int | None


class QueueService:
    """Operator-facing operations on queue records."""

    def __init__(self, db: Session, live_index: LiveQueueIndex | None = None) -> None:
        self.db = db
        self.queues = QueueRepository(db)
        self.tokens = TokenRepository(db)
        self.live_index = live_index or LiveQueueIndex()

    def create_queue(self, name: str, location: str, operator_id: int | None = None) -> Queue:
        """Create an active queue; (name, location) must be unique."""
        name = (name or "").strip()
        location = (location or "").strip()
        if not name or not location:
            raise ValidationError("Queue name and location are required")
        if self.queues.find_by_name_location(name, location) is not None:
            raise ConflictError(f"Queue {name!r} already exists at {location!r}")
        try:
            queue = self.queues.create(name=name, location=location, operator_id=operator_id)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(f"Queue {name!r} already exists at {location!r}") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Queue creation failed for %s at %s", name, location)
            raise PersistenceError("Failed to create queue") from exc
        logger.info("Created queue %s (%s at %s)", queue.id, name, location)
        return queue

    def get_queue(self, queue_id: int) -> Queue:
        queue = self.queues.get_by_id(queue_id)
        if queue is None:
            raise NotFoundError("Queue not found")
        return queue

    def set_active(self, queue_id: int, active: bool) -> Queue:
        """Open or close a queue for new joins; existing tickets are untouched."""
        queue = self.get_queue(queue_id)
        if queue.is_active == active:
            return queue
        queue.is_active = active
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Could not change active flag of queue %s", queue_id)
            raise PersistenceError("Failed to update queue") from exc
        self.db.refresh(queue)
        logger.info("Queue %s %s", queue_id, "activated" if active else "deactivated")
        return queue

    def status(self, queue_id: int) -> QueueStatus:
        """Return waiting count and now-serving ticket for a queue.

        Both come from the live index; the durable store answers when the
        cache is unavailable or holds no now-serving pointer. Queues left
        stale by an earlier outage are rebuilt before reading.
        """
        queue = self.get_queue(queue_id)
        self.live_index.repair(self.tokens.index_snapshot)

        waiting_count = self.live_index.waiting_count(queue_id)
        if waiting_count is None:
            waiting_count = self.tokens.count_waiting(queue_id)

        serving = None
        serving_id = self.live_index.now_serving(queue_id)
        if serving_id is not None:
            serving = self.tokens.get_by_id(serving_id)
        if serving is None:
            serving = self.tokens.last_served(queue_id)

        return QueueStatus(
            queue_id=queue.id,
            is_active=queue.is_active,
            next_sequence=queue.next_sequence,
            waiting_count=waiting_count,
            now_serving_ticket_id=serving.id if serving else None,
            now_serving_seq=serving.seq if serving else None,
        )
