"""Concurrent issuance against a file-backed database."""
from __future__ import annotations

import threading
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest
from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from tokenline.db.session import build_engine, create_tables
from tokenline.models import Queue, Token, User
from tokenline.services import ConflictError, TicketService

JOINERS = 20


@pytest.fixture()
def file_engine(tmp_path: Path) -> Iterator[Engine]:
    engine = build_engine(f"sqlite:///{tmp_path / 'concurrency.db'}")
    create_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(file_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=file_engine, autocommit=False, autoflush=False)


def _seed(factory: sessionmaker[Session], users: int) -> tuple[int, list[int]]:
    with factory() as session:
        queue = Queue(name="Registrar", location="Admin Block", is_active=True, next_sequence=1)
        members = [User(display_name=f"Student {i}") for i in range(users)]
        session.add(queue)
        session.add_all(members)
        session.commit()
        return queue.id, [member.id for member in members]


def test_parallel_joins_get_contiguous_sequences(session_factory, rate_limiter, live_index) -> None:
    queue_id, user_ids = _seed(session_factory, JOINERS)

    def join(user_id: int) -> int:
        with session_factory() as session:
            service = TicketService(session, rate_limiter, live_index)
            return service.issue_ticket(queue_id, user_id).seq

    with ThreadPoolExecutor(max_workers=8) as pool:
        seqs = list(pool.map(join, user_ids))

    assert sorted(seqs) == list(range(1, JOINERS + 1))

    with session_factory() as session:
        assert session.get(Queue, queue_id).next_sequence == JOINERS + 1
        waiting = session.execute(
            select(Token.id).where(Token.queue_id == queue_id).order_by(Token.seq)
        ).scalars().all()

    assert live_index.waiting_ids(queue_id) == list(waiting)


def test_same_user_racing_joins_admit_one(session_factory, rate_limiter, live_index, fake_redis) -> None:
    # Without the cache only the database constraint stands between the joins.
    fake_redis.fail = True
    _, (user_id,) = _seed(session_factory, 1)
    with session_factory() as session:
        second_queue = Queue(name="Library", location="Admin Block", is_active=True, next_sequence=1)
        session.add(second_queue)
        session.commit()
        queue_ids = [
            queue.id for queue in session.execute(select(Queue).order_by(Queue.id)).scalars()
        ]

    barrier = threading.Barrier(len(queue_ids))

    def join(queue_id: int) -> object:
        with session_factory() as session:
            service = TicketService(session, rate_limiter, live_index)
            barrier.wait(timeout=10)
            try:
                return service.issue_ticket(queue_id, user_id).seq
            except ConflictError as exc:
                return exc

    with ThreadPoolExecutor(max_workers=len(queue_ids)) as pool:
        outcomes = list(pool.map(join, queue_ids))

    conflicts = [outcome for outcome in outcomes if isinstance(outcome, ConflictError)]
    assert len(conflicts) == 1
    assert conflicts[0].message == "You are already in a queue"

    with session_factory() as session:
        tickets = session.execute(select(Token).where(Token.user_id == user_id)).scalars().all()
    assert len(tickets) == 1
