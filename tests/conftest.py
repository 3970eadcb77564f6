# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from itertools import count

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tests.fakes import FakeClock, FakeRedis
from tokenline.api.v1.dependencies import get_cache_dep, get_queue_service, get_ticket_service
from tokenline.db import cache as cache_module
from tokenline.db.cache import CacheConnection
from tokenline.db.session import Base
from tokenline.db.session import get_db as app_get_session
from tokenline.main import app as fastapi_app
from tokenline.models import Queue, User
from tokenline.services import LiveQueueIndex, QueueService, RateLimiter, TicketService

TEST_DB_URL = "sqlite://"

COOLDOWN_SECONDS = 30
PER_MINUTE = 5
PER_HOUR = 20

_QUEUE_NAME_COUNTER = count(1)


@pytest.fixture(scope="session")
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def db_session(engine: Engine) -> Iterator[Session]:
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        # Services commit, so wipe rows to give each test a clean database.
        with engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def fake_redis(clock: FakeClock) -> FakeRedis:
    return FakeRedis(clock)


@pytest.fixture()
def cache(fake_redis: FakeRedis, clock: FakeClock) -> CacheConnection:
    """Cache handle wired to the fake server; backoff follows the fake clock."""
    return CacheConnection(
        "redis://fake:6379/0",
        client_factory=lambda url: fake_redis,
        backoff_base_seconds=1.0,
        backoff_cap_seconds=8.0,
        monotonic=clock,
    )


@pytest.fixture()
def rate_limiter(cache: CacheConnection, clock: FakeClock) -> RateLimiter:
    return RateLimiter(
        cache,
        cooldown_seconds=COOLDOWN_SECONDS,
        per_minute=PER_MINUTE,
        per_hour=PER_HOUR,
        clock=clock,
    )


@pytest.fixture()
def live_index(cache: CacheConnection) -> LiveQueueIndex:
    return LiveQueueIndex(cache)


@pytest.fixture()
def ticket_service(
    db_session: Session,
    rate_limiter: RateLimiter,
    live_index: LiveQueueIndex,
) -> TicketService:
    return TicketService(db_session, rate_limiter, live_index)


@pytest.fixture()
def queue_service(db_session: Session, live_index: LiveQueueIndex) -> QueueService:
    return QueueService(db_session, live_index)


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    """Return a factory persisting users."""

    def _make(display_name: str = "Test User", role: str = "user") -> User:
        user = User(display_name=display_name, role=role)
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture()
def make_queue(db_session: Session) -> Callable[..., Queue]:
    """Return a factory persisting queues with unique names."""

    def _make(name: str | None = None, location: str = "Main Hall", is_active: bool = True) -> Queue:
        queue = Queue(
            name=name or f"Counter {next(_QUEUE_NAME_COUNTER)}",
            location=location,
            is_active=is_active,
            next_sequence=1,
        )
        db_session.add(queue)
        db_session.commit()
        return queue

    return _make


@pytest.fixture()
def test_user(make_user: Callable[..., User]) -> User:
    return make_user("Test User")


@pytest.fixture()
def other_user(make_user: Callable[..., User]) -> User:
    return make_user("Other User")


@pytest.fixture()
def queue(make_queue: Callable[..., Queue]) -> Queue:
    return make_queue("Cafeteria", "Block A")


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    db_session: Session,
    cache: CacheConnection,
    rate_limiter: RateLimiter,
    live_index: LiveQueueIndex,
    monkeypatch: pytest.MonkeyPatch,
) -> Iterator[None]:
    def _get_session_override() -> Generator[Session, None, None]:
        yield db_session

    # Startup and shutdown hooks use the module-level handle.
    monkeypatch.setattr(cache_module, "_cache", cache)

    app.dependency_overrides[app_get_session] = _get_session_override
    app.dependency_overrides[get_cache_dep] = lambda: cache
    app.dependency_overrides[get_ticket_service] = lambda: TicketService(
        db_session, rate_limiter, live_index
    )
    app.dependency_overrides[get_queue_service] = lambda: QueueService(db_session, live_index)
    try:
        yield
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def user_headers(user: User) -> dict[str, str]:
    """Return the identity header the upstream gateway would forward."""
    return {"X-User-Id": str(user.id)}
