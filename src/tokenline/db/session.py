"""Engine and session wiring for the durable ticket store."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from tokenline.core.settings import settings

# Seconds a SQLite connection waits on a locked database before failing.
SQLITE_BUSY_TIMEOUT_SECONDS = 30


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


# Model modules register their tables on Base.metadata when imported.
import tokenline.models  # noqa: E402,F401


def build_engine(url: str, *, echo: bool = False) -> Engine:
    """Create an engine suitable for concurrent request handling.

    SQLite connections are shared across threadpool workers and wait on
    writer locks instead of failing immediately; other backends get
    ``pool_pre_ping`` so stale pooled connections are replaced.
    """
    options: dict[str, Any] = {"echo": echo}
    if make_url(url).get_backend_name() == "sqlite":
        options["connect_args"] = {
            "check_same_thread": False,
            "timeout": SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    else:
        options["pool_pre_ping"] = True
    return create_engine(url, **options)


engine = build_engine(settings.database_url, echo=settings.sql_debug)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a request-scoped session, closing it when the request ends."""
    with SessionLocal() as db:
        yield db


def create_tables(bind: Engine | None = None) -> None:
    """Create the queue, ticket and user tables if they are missing."""
    Base.metadata.create_all(bind=bind or engine)


def drop_tables(bind: Engine | None = None) -> None:
    Base.metadata.drop_all(bind=bind or engine)
