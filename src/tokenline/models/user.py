# src/tokenline/models/user.py
"""SQLAlchemy model for the people who join and operate queues."""

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from tokenline.db.session import Base

USER_ROLE_USER = "user"
USER_ROLE_OPERATOR = "operator"
USER_ROLE_ADMIN = "admin"


class User(Base):
    """Identity record owned by the upstream auth service.

    Only the fields this service reads are mapped here.
    """

    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    # One of "user", "operator", "admin".
    role: Mapped[str] = mapped_column(Text, nullable=False, default=USER_ROLE_USER)
