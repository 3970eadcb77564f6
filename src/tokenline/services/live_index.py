"""Ephemeral per-queue ordering kept in Redis.

Each queue has a sorted set of waiting ticket ids scored by ``seq`` and a
"now serving" pointer. The durable token table is the source of truth; this
index only makes position lookups cheap and can be rebuilt at any time from
waiting tokens ordered by ``seq``.

Writes return True when applied and False when the cache is unavailable.
A failed write flags its queue on the shared cache handle; ``repair`` rebuilds
flagged queues from the durable store once the cache answers again. Reads
return None when the cache is unavailable.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any, TypeVar

from tokenline.db.cache import CacheConnection, CacheUnavailableError, get_cache

logger = logging.getLogger(__name__)

T = TypeVar("T")


def waiting_key(queue_id: int) -> str:
    return f"queue:{queue_id}:waiting"


def now_serving_key(queue_id: int) -> str:
    return f"queue:{queue_id}:nowServing"


class LiveQueueIndex:
    """Sorted-set projection of the waiting tickets of every queue."""

    def __init__(self, cache: CacheConnection | None = None) -> None:
        self._cache = cache or get_cache()

    def _attempt(
        self, action: str, queue_id: int, operation: Callable[[Any], T]
    ) -> tuple[bool, T | None]:
        try:
            return True, self._cache.run(operation)
        except CacheUnavailableError as exc:
            logger.warning("Live index %s skipped for queue %s: %s", action, queue_id, exc)
            return False, None

    def _write(self, action: str, queue_id: int, operation: Callable[[Any], Any]) -> bool:
        applied, _ = self._attempt(action, queue_id, operation)
        if not applied:
            self._cache.flag_for_repair(queue_id)
        return applied

    def enqueue(self, queue_id: int, ticket_id: int, seq: int) -> bool:
        """Insert (or re-insert) a waiting ticket."""
        return self._write(
            "enqueue",
            queue_id,
            lambda client: client.zadd(waiting_key(queue_id), {str(ticket_id): seq}),
        )

    def remove(self, queue_id: int, ticket_id: int) -> bool:
        """Drop a ticket from the waiting set; missing tickets are ignored."""
        return self._write(
            "remove",
            queue_id,
            lambda client: client.zrem(waiting_key(queue_id), str(ticket_id)),
        )

    def set_now_serving(self, queue_id: int, ticket_id: int) -> bool:
        return self._write(
            "set_now_serving",
            queue_id,
            lambda client: client.set(now_serving_key(queue_id), str(ticket_id)),
        )

    def position_of(self, queue_id: int, ticket_id: int) -> int | None:
        """Return the 1-based rank of a waiting ticket.

        Returns None when the ticket is not in the index or the cache is
        unavailable; callers fall back to the durable store in both cases.
        """
        _, rank = self._attempt(
            "position_of",
            queue_id,
            lambda client: client.zrank(waiting_key(queue_id), str(ticket_id)),
        )
        if rank is None:
            return None
        return int(rank) + 1

    def now_serving(self, queue_id: int) -> int | None:
        _, value = self._attempt(
            "now_serving",
            queue_id,
            lambda client: client.get(now_serving_key(queue_id)),
        )
        return int(value) if value is not None else None

    def waiting_ids(self, queue_id: int) -> list[int] | None:
        """Return waiting ticket ids in serving order."""
        applied, members = self._attempt(
            "waiting_ids",
            queue_id,
            lambda client: client.zrange(waiting_key(queue_id), 0, -1),
        )
        if not applied:
            return None
        return [int(member) for member in members or []]

    def waiting_count(self, queue_id: int) -> int | None:
        applied, count = self._attempt(
            "waiting_count",
            queue_id,
            lambda client: client.zcard(waiting_key(queue_id)),
        )
        return int(count or 0) if applied else None

    def rebuild(
        self,
        queue_id: int,
        entries: Iterable[tuple[int, int]],
        now_serving: int | None = None,
    ) -> bool:
        """Replace a queue's index with ``(ticket_id, seq)`` entries.

        The delete and re-insert run in a single MULTI/EXEC so readers never
        observe a half-built set.
        """
        mapping = {str(ticket_id): seq for ticket_id, seq in entries}

        def _replace(client: Any) -> list[Any]:
            pipe = client.pipeline(transaction=True)
            pipe.delete(waiting_key(queue_id))
            if mapping:
                pipe.zadd(waiting_key(queue_id), mapping)
            if now_serving is not None:
                pipe.set(now_serving_key(queue_id), str(now_serving))
            return pipe.execute()

        applied = self._write("rebuild", queue_id, _replace)
        if applied:
            logger.info("Rebuilt live index for queue %s with %d entries", queue_id, len(mapping))
        return applied

    def repair(
        self, snapshot: Callable[[int], tuple[list[tuple[int, int]], int | None]]
    ) -> list[int]:
        """Rebuild every queue flagged by a failed write.

        ``snapshot(queue_id)`` returns the durable ``(entries, now_serving)``
        of a queue. Does nothing while the cache is unavailable; queues whose
        rebuild fails stay flagged.

        Returns:
            Ids of the queues rebuilt.
        """
        if not self._cache.is_ready():
            return []
        pending = sorted(self._cache.take_repairs())
        repaired: list[int] = []
        try:
            while pending:
                queue_id = pending[0]
                entries, now_serving = snapshot(queue_id)
                if self.rebuild(queue_id, entries, now_serving=now_serving):
                    repaired.append(queue_id)
                pending.pop(0)
        finally:
            for queue_id in pending:
                self._cache.flag_for_repair(queue_id)
        return repaired
