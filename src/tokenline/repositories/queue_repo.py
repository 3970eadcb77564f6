"""Data access helpers for working with queues."""
from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from tokenline.db.time import utcnow
from tokenline.models.queue import Queue

__all__ = ["QueueRepository"]


class QueueRepository:
    """Thin wrapper around database access for queue entities."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get_by_id(self, queue_id: int) -> Queue | None:
        """Return a queue by identifier."""
        return self.session.get(Queue, queue_id)

    def find_by_name_location(self, name: str, location: str) -> Queue | None:
        result = self.session.execute(
            select(Queue).where(Queue.name == name, Queue.location == location)
        )
        return result.scalars().first()

    def create(self, *, name: str, location: str, operator_id: int | None = None) -> Queue:
        """Insert a new active queue whose first ticket will get sequence 1."""
        queue = Queue(
            name=name,
            location=location,
            operator_id=operator_id,
            is_active=True,
            next_sequence=1,
        )
        self.session.add(queue)
        self.session.flush()
        return queue

    def claim_next_sequence(self, queue_id: int) -> int | None:
        """Atomically advance an active queue's counter.

        Runs a single conditional ``UPDATE ... RETURNING`` so concurrent callers
        serialize on the queue row and never read the same value.

        Returns:
            The pre-increment ``next_sequence`` to use as the ticket's ``seq``,
            or None if the queue does not exist or is inactive.
        """
        stmt = (
            update(Queue)
            .where(Queue.id == queue_id, Queue.is_active.is_(True))
            .values(next_sequence=Queue.next_sequence + 1, updated_at=utcnow())
            .returning(Queue.next_sequence)
            .execution_options(synchronize_session=False)
        )
        incremented = self.session.execute(stmt).scalar_one_or_none()
        if incremented is None:
            return None
        return int(incremented) - 1
