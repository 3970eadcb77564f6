"""Admission control for queue joins.

Redis key structure:

- ``user:{user_id}:queue:{queue_id}:lastJoin`` -> join timestamp in ms (TTL: cooldown)
- ``user:{user_id}:joinCount:minute`` -> count (TTL: 60s, set on first increment)
- ``user:{user_id}:joinCount:hour`` -> count (TTL: 3600s, set on first increment)

The limiter fails open: when the cache is unreachable every check is allowed
and every record is skipped. Losing these counters only relaxes enforcement;
the durable ticket model never depends on them.
"""

from __future__ import annotations

import enum
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Final

from tokenline.core.settings import settings
from tokenline.db.cache import CacheConnection, CacheUnavailableError, get_cache
from tokenline.db.time import epoch_millis, whole_seconds_between

logger = logging.getLogger(__name__)

MINUTE_WINDOW_SECONDS: Final[int] = 60
HOUR_WINDOW_SECONDS: Final[int] = 3600


def last_join_key(user_id: int, queue_id: int) -> str:
    return f"user:{user_id}:queue:{queue_id}:lastJoin"


def minute_count_key(user_id: int) -> str:
    return f"user:{user_id}:joinCount:minute"


def hour_count_key(user_id: int) -> str:
    return f"user:{user_id}:joinCount:hour"


class AdmissionOutcome(enum.Enum):
    """How a rate-limit check was resolved."""

    ALLOWED = "allowed"
    DENIED = "denied"
    # Cache unavailable; the join is let through.
    DEGRADED = "degraded"


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a join admission check."""

    outcome: AdmissionOutcome
    message: str | None = None
    retry_after_seconds: int | None = None

    @property
    def allowed(self) -> bool:
        return self.outcome is not AdmissionOutcome.DENIED

    @classmethod
    def allow(cls) -> RateLimitDecision:
        return cls(AdmissionOutcome.ALLOWED)

    @classmethod
    def degraded(cls) -> RateLimitDecision:
        return cls(AdmissionOutcome.DEGRADED)

    @classmethod
    def deny(cls, message: str, retry_after_seconds: int) -> RateLimitDecision:
        return cls(AdmissionOutcome.DENIED, message, retry_after_seconds)


def _as_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class RateLimiter:
    """Cooldown and sliding-window join caps backed by Redis."""

    def __init__(
        self,
        cache: CacheConnection | None = None,
        *,
        cooldown_seconds: int | None = None,
        per_minute: int | None = None,
        per_hour: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache = cache or get_cache()
        limits = settings.rate_limits
        self.cooldown_seconds = (
            limits["cooldown_seconds"] if cooldown_seconds is None else cooldown_seconds
        )
        self.per_minute = limits["per_minute"] if per_minute is None else per_minute
        self.per_hour = limits["per_hour"] if per_hour is None else per_hour
        self._clock = clock

    def _now_ms(self) -> int:
        return epoch_millis(self._clock())

    def check_join(self, user_id: int, queue_id: int) -> RateLimitDecision:
        """Check all rate limits for a user attempting to join a queue.

        Checks run in a fixed order (cooldown, per-minute, per-hour) and the
        first failing one decides. All counters are read in one round trip.
        """

        def _read(client: Any) -> list[Any]:
            pipe = client.pipeline(transaction=False)
            pipe.get(last_join_key(user_id, queue_id))
            pipe.get(minute_count_key(user_id))
            pipe.ttl(minute_count_key(user_id))
            pipe.get(hour_count_key(user_id))
            pipe.ttl(hour_count_key(user_id))
            return pipe.execute()

        try:
            last_join, minute_count, minute_ttl, hour_count, hour_ttl = self._cache.run(_read)
        except CacheUnavailableError as exc:
            logger.warning(
                "Rate limiter degraded, allowing join for user %s on queue %s: %s",
                user_id,
                queue_id,
                exc,
            )
            return RateLimitDecision.degraded()

        # 1. Per-queue cooldown
        if last_join is not None:
            elapsed = whole_seconds_between(_as_int(last_join), self._now_ms())
            remaining = self.cooldown_seconds - elapsed
            if remaining > 0:
                logger.info(
                    "User %s blocked: cooldown for queue %s, %ss remaining",
                    user_id,
                    queue_id,
                    remaining,
                )
                return RateLimitDecision.deny(
                    f"Please wait {remaining} seconds before rejoining this queue.",
                    remaining,
                )

        # 2. Per-minute cap
        minute_count = _as_int(minute_count)
        if minute_count >= self.per_minute:
            retry_after = _as_int(minute_ttl) if _as_int(minute_ttl) > 0 else MINUTE_WINDOW_SECONDS
            logger.info(
                "User %s blocked: per-minute limit reached (%s/%s)",
                user_id,
                minute_count,
                self.per_minute,
            )
            return RateLimitDecision.deny(
                f"You've joined too many queues. Please wait {retry_after} seconds.",
                retry_after,
            )

        # 3. Per-hour cap
        hour_count = _as_int(hour_count)
        if hour_count >= self.per_hour:
            retry_after = _as_int(hour_ttl) if _as_int(hour_ttl) > 0 else HOUR_WINDOW_SECONDS
            retry_after_minutes = math.ceil(retry_after / 60)
            logger.info(
                "User %s blocked: per-hour limit reached (%s/%s)",
                user_id,
                hour_count,
                self.per_hour,
            )
            return RateLimitDecision.deny(
                "Hourly queue join limit reached. "
                f"Please try again in {retry_after_minutes} minutes.",
                retry_after,
            )

        return RateLimitDecision.allow()

    def record_join(self, user_id: int, queue_id: int) -> bool:
        """Record a successful queue join.

        Sets the cooldown marker and bumps both window counters in one
        transactional pipeline. ``EXPIRE ... NX`` only arms a window on its
        first increment, so later joins do not extend it.

        Returns:
            True if the join was recorded, False if the cache was unavailable.
        """
        now_ms = self._now_ms()

        def _write(client: Any) -> list[Any]:
            pipe = client.pipeline(transaction=True)
            if self.cooldown_seconds > 0:
                pipe.set(
                    last_join_key(user_id, queue_id),
                    str(now_ms),
                    ex=self.cooldown_seconds,
                )
            pipe.incr(minute_count_key(user_id))
            pipe.expire(minute_count_key(user_id), MINUTE_WINDOW_SECONDS, nx=True)
            pipe.incr(hour_count_key(user_id))
            pipe.expire(hour_count_key(user_id), HOUR_WINDOW_SECONDS, nx=True)
            return pipe.execute()

        try:
            self._cache.run(_write)
        except CacheUnavailableError as exc:
            logger.warning(
                "Could not record join for user %s on queue %s: %s",
                user_id,
                queue_id,
                exc,
            )
            return False

        logger.info("Recorded join for user %s in queue %s", user_id, queue_id)
        return True
