# src/tokenline/models/queue.py
"""SQLAlchemy model for physical-service queues."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tokenline.db.session import Base
from tokenline.db.time import utcnow


class Queue(Base):
    """A named service point such as a cafeteria counter or a clinic desk.

    Queues are deactivated rather than deleted so issued tickets keep a valid
    reference. ``next_sequence`` is only ever advanced by the atomic
    increment-and-fetch used when a ticket is issued.
    """

    __tablename__ = "queue"
    __table_args__ = (
        UniqueConstraint("name", "location", name="uq_queue_name_location"),
        Index("ix_queue_is_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    location: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Sequence handed to the next ticket; starts at 1 and never goes back.
    next_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    operator_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("app_user.id"),
        nullable=True,
    )
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
