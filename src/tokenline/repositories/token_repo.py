"""Data access helpers for working with tickets."""
from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from tokenline.db.time import utcnow
from tokenline.models.token import ACTIVE_STATUSES, Token, TokenStatus

__all__ = ["TokenRepository"]

_ACTIVE_VALUES = [status.value for status in ACTIVE_STATUSES]
_SERVED_VALUES = [TokenStatus.SERVED.value, TokenStatus.COMPLETED.value]


class TokenRepository:
    """Thin wrapper around database access for ticket entities."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    def get_by_id(self, token_id: int) -> Token | None:
        """Return a ticket by identifier."""
        return self.session.get(Token, token_id)

    def find_active_for_user(self, user_id: int) -> Token | None:
        """Return the user's waiting or served ticket, in any queue."""
        result = self.session.execute(
            select(Token).where(Token.user_id == user_id, Token.status.in_(_ACTIVE_VALUES))
        )
        return result.scalars().first()

    def create(self, *, queue_id: int, user_id: int, seq: int) -> Token:
        """Insert a waiting ticket and return the persisted ORM instance."""
        token = Token(
            queue_id=queue_id,
            user_id=user_id,
            seq=seq,
            status=TokenStatus.WAITING.value,
        )
        self.session.add(token)
        self.session.flush()
        return token

    def update_status(self, token_id: int, expected: TokenStatus, new: TokenStatus) -> bool:
        """Compare-and-set a ticket's status.

        Returns:
            True if the row still had ``expected`` and was updated.
        """
        result = self.session.execute(
            update(Token)
            .where(Token.id == token_id, Token.status == expected.value)
            .values(status=new.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_waiting(self, queue_id: int) -> list[Token]:
        """Return a queue's waiting tickets in serving order."""
        result = self.session.execute(
            select(Token)
            .where(Token.queue_id == queue_id, Token.status == TokenStatus.WAITING.value)
            .order_by(Token.seq.asc())
        )
        return list(result.scalars())

    def count_waiting(self, queue_id: int) -> int:
        return int(
            self.session.execute(
                select(func.count())
                .select_from(Token)
                .where(Token.queue_id == queue_id, Token.status == TokenStatus.WAITING.value)
            ).scalar_one()
        )

    def waiting_rank(self, queue_id: int, seq: int) -> int:
        """Return the 1-based rank of ``seq`` among a queue's waiting tickets."""
        return int(
            self.session.execute(
                select(func.count())
                .select_from(Token)
                .where(
                    Token.queue_id == queue_id,
                    Token.status == TokenStatus.WAITING.value,
                    Token.seq <= seq,
                )
            ).scalar_one()
        )

    def last_served(self, queue_id: int) -> Token | None:
        """Return the ticket most recently called to the counter.

        Completed tickets count as well since they passed through served.
        """
        result = self.session.execute(
            select(Token)
            .where(Token.queue_id == queue_id, Token.status.in_(_SERVED_VALUES))
            .order_by(Token.updated_at.desc(), Token.seq.desc())
            .limit(1)
        )
        return result.scalars().first()

    def index_snapshot(self, queue_id: int) -> tuple[list[tuple[int, int]], int | None]:
        """Return ``(ticket_id, seq)`` of waiting tickets and the now-serving id."""
        entries = [(token.id, token.seq) for token in self.list_waiting(queue_id)]
        serving = self.last_served(queue_id)
        return entries, serving.id if serving else None
