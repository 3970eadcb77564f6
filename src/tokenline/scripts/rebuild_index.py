"""Rebuild the live queue index from the durable ticket table.

Run after a cache restart or eviction:

    python -m tokenline.scripts.rebuild_index            # every active queue
    python -m tokenline.scripts.rebuild_index --queue 3  # a single queue
"""
from __future__ import annotations

import argparse
import logging
import sys

from sqlalchemy import select

from tokenline.db.cache import close_cache, init_cache
from tokenline.db.session import SessionLocal
from tokenline.models import Queue
from tokenline.services import LiveQueueIndex, RateLimiter, TicketService

logger = logging.getLogger(__name__)


def rebuild(
    queue_ids: list[int] | None = None, *, include_inactive: bool = False
) -> dict[int, int]:
    """Rebuild the index for the given queues (all queues when None).

    Returns:
        Mapping of queue id to the number of waiting tickets written.
    """
    cache = init_cache()
    if not cache.is_ready():
        raise RuntimeError(f"cache at {cache.url} is not reachable")

    rebuilt: dict[int, int] = {}
    with SessionLocal() as db:
        service = TicketService(db, RateLimiter(cache), LiveQueueIndex(cache))
        if queue_ids is None:
            stmt = select(Queue.id).order_by(Queue.id)
            if not include_inactive:
                stmt = stmt.where(Queue.is_active.is_(True))
            queue_ids = list(db.execute(stmt).scalars())
        for queue_id in queue_ids:
            rebuilt[queue_id] = service.rebuild_index(queue_id)
    return rebuilt


def main() -> None:
    parser = argparse.ArgumentParser(description="Rebuild the live queue index from the database")
    parser.add_argument(
        "--queue",
        type=int,
        action="append",
        dest="queues",
        help="Queue id to rebuild (repeatable). Defaults to every active queue.",
    )
    parser.add_argument(
        "--include-inactive",
        action="store_true",
        help="Also rebuild queues that no longer accept joins.",
    )
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    try:
        rebuilt = rebuild(args.queues, include_inactive=args.include_inactive)
    except RuntimeError as exc:
        print(f"[rebuild_index] ERROR: {exc}", file=sys.stderr)
        sys.exit(1)
    finally:
        close_cache()

    for queue_id, count in rebuilt.items():
        print(f"[rebuild_index] queue {queue_id}: {count} waiting")


if __name__ == "__main__":
    main()
