# src/tokenline/models/token.py
"""SQLAlchemy model for issued queue tickets."""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from tokenline.db.session import Base
from tokenline.db.time import utcnow


class TokenStatus(str, enum.Enum):
    """Lifecycle states of a ticket."""

    WAITING = "waiting"
    SERVED = "served"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self not in ACTIVE_STATUSES


ACTIVE_STATUSES = frozenset({TokenStatus.WAITING, TokenStatus.SERVED})
TERMINAL_STATUSES = frozenset({TokenStatus.COMPLETED, TokenStatus.CANCELLED})

_ACTIVE_STATUS_PREDICATE = text("status IN ('waiting', 'served')")


class Token(Base):
    """One person's claim to a position in a queue.

    ``seq`` is the queue's ``next_sequence`` at issuance time and defines the
    serving order. A user may hold at most one waiting or served token; the
    partial unique index below backs the service-level pre-check.
    """

    __tablename__ = "token"
    __table_args__ = (
        UniqueConstraint("queue_id", "seq", name="uq_token_queue_seq"),
        Index(
            "uq_token_active_owner",
            "user_id",
            unique=True,
            sqlite_where=_ACTIVE_STATUS_PREDICATE,
            postgresql_where=_ACTIVE_STATUS_PREDICATE,
        ),
        Index("ix_token_queue_status_seq", "queue_id", "status", "seq"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    queue_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("queue.id"),
        nullable=False,
    )
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("app_user.id"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    # Stored as the enum value ("waiting", "served", ...).
    status: Mapped[str] = mapped_column(Text, nullable=False, default=TokenStatus.WAITING.value)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    @property
    def token_status(self) -> TokenStatus:
        """Return the status as a ``TokenStatus`` member."""
        return TokenStatus(self.status)
