"""Process-wide Redis connection with readiness tracking.

Usage:
    from tokenline.db.cache import init_cache, close_cache, get_cache

    # At startup:
    init_cache()

    # In business logic:
    cache = get_cache()
    value = cache.run(lambda client: client.get("key"))

    # At shutdown:
    close_cache()

The handle never raises redis errors to callers: ``run`` converts them into
``CacheUnavailableError`` so the rate limiter and the live queue index can
apply their fail-open policy. After a failure the handle reports itself as
not ready and only probes the server again after a capped exponential
backoff, so a dead cache costs one cheap flag check per call.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Hashable
from threading import Lock
from typing import Any, TypeVar

import redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from tokenline.core.settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Transport failures mean the server is unusable; command errors do not.
_TRANSPORT_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)


class CacheUnavailableError(RuntimeError):
    """Raised when the cache cannot serve a request (down, timing out, not ready)."""


def _default_client_factory(url: str) -> redis.Redis:
    return redis.Redis.from_url(
        url,
        decode_responses=True,
        socket_timeout=settings.cache_socket_timeout_seconds,
        socket_connect_timeout=settings.cache_connect_timeout_seconds,
        retry=Retry(
            ExponentialBackoff(
                cap=settings.cache_retry_backoff_cap_seconds,
                base=settings.cache_retry_backoff_base_seconds,
            ),
            1,
        ),
    )


class CacheConnection:
    """Lazily connected Redis handle that remembers whether the server is usable."""

    def __init__(
        self,
        url: str | None = None,
        *,
        client_factory: Callable[[str], Any] | None = None,
        backoff_base_seconds: float | None = None,
        backoff_cap_seconds: float | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.url = url or settings.redis_url
        self._client_factory = client_factory or _default_client_factory
        self._backoff_base = (
            settings.cache_reconnect_backoff_base_seconds
            if backoff_base_seconds is None
            else backoff_base_seconds
        )
        self._backoff_cap = (
            settings.cache_reconnect_backoff_cap_seconds
            if backoff_cap_seconds is None
            else backoff_cap_seconds
        )
        self._monotonic = monotonic
        self._client: Any | None = None
        self._ready = False
        self._failures = 0
        self._next_probe_at = 0.0
        self._lock = Lock()
        self._needs_repair: set[Hashable] = set()

    @property
    def client(self) -> Any:
        """Return the underlying client, creating it on first use."""
        with self._lock:
            if self._client is None:
                self._client = self._client_factory(self.url)
            return self._client

    def is_ready(self) -> bool:
        """Return True if the cache is believed usable.

        When the last call failed, a single PING is attempted once the backoff
        delay has elapsed; until then this returns False without any I/O.
        """
        if self._ready:
            return True
        if self._monotonic() < self._next_probe_at:
            return False
        try:
            self.client.ping()
        except (RedisError, OSError) as exc:
            self.mark_failed(exc)
            return False
        self.mark_ready()
        return True

    def mark_ready(self) -> None:
        with self._lock:
            recovered = self._failures > 0
            self._ready = True
            self._failures = 0
            self._next_probe_at = 0.0
        if recovered:
            logger.info("Cache connection recovered (%s)", _redact(self.url))
        else:
            logger.info("Cache connected and ready (%s)", _redact(self.url))

    def mark_failed(self, exc: BaseException) -> None:
        """Flag the cache as unusable and schedule the next readiness probe."""
        with self._lock:
            self._ready = False
            self._failures += 1
            delay = min(self._backoff_cap, self._backoff_base * (2 ** (self._failures - 1)))
            self._next_probe_at = self._monotonic() + delay
            failures = self._failures
        logger.warning(
            "Cache unavailable (attempt %d), next probe in %.1fs: %s",
            failures,
            delay,
            exc,
        )

    def run(self, operation: Callable[[Any], T]) -> T:
        """Execute ``operation`` against the client.

        Connection and timeout errors mark the handle as failed. A command
        error such as ``WRONGTYPE`` only fails this call.

        Raises:
            CacheUnavailableError: If the cache is not ready or the call fails.
        """
        if not self.is_ready():
            raise CacheUnavailableError("cache is not ready")
        try:
            return operation(self.client)
        except _TRANSPORT_ERRORS as exc:
            self.mark_failed(exc)
            raise CacheUnavailableError(str(exc)) from exc
        except RedisError as exc:
            logger.warning("Cache command rejected: %s", exc)
            raise CacheUnavailableError(str(exc)) from exc

    def flag_for_repair(self, item: Hashable) -> None:
        """Remember that data derived from ``item`` may be out of date."""
        with self._lock:
            self._needs_repair.add(item)

    def take_repairs(self) -> set[Hashable]:
        """Return and clear everything flagged since the last call."""
        with self._lock:
            pending, self._needs_repair = self._needs_repair, set()
        return pending

    def close(self) -> None:
        """Release the client's connection pool."""
        with self._lock:
            client, self._client = self._client, None
            self._ready = False
        if client is not None:
            try:
                client.close()
            except (RedisError, OSError) as exc:  # pragma: no cover - shutdown path
                logger.warning("Error closing cache connection: %s", exc)


def _redact(url: str) -> str:
    return url.split("@")[-1] if "@" in url else url


_cache: CacheConnection | None = None
_cache_lock = Lock()


def init_cache(url: str | None = None, **kwargs: Any) -> CacheConnection:
    """Create the shared cache handle; safe to call more than once."""
    global _cache
    with _cache_lock:
        if _cache is None:
            _cache = CacheConnection(url, **kwargs)
        return _cache


def get_cache() -> CacheConnection:
    """Return the shared cache handle, initialising it from settings if needed."""
    if _cache is None:
        return init_cache()
    return _cache


def close_cache() -> None:
    """Tear down the shared cache handle."""
    global _cache
    with _cache_lock:
        cache, _cache = _cache, None
    if cache is not None:
        cache.close()
