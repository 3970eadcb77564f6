"""Tests for the shared cache handle and its readiness tracking."""

import pytest
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from tests.fakes import FakeClock, FakeRedis
from tokenline.db import cache as cache_module
from tokenline.db.cache import CacheConnection, CacheUnavailableError


def test_client_is_created_lazily(clock) -> None:
    created = []

    def factory(url: str) -> FakeRedis:
        created.append(url)
        return FakeRedis(clock)

    cache = CacheConnection("redis://fake:6379/0", client_factory=factory, monotonic=clock)
    assert created == []

    assert cache.is_ready() is True
    assert created == ["redis://fake:6379/0"]


def test_run_returns_operation_result(cache, fake_redis) -> None:
    fake_redis.set("k", "v")
    assert cache.run(lambda client: client.get("k")) == "v"


def test_failure_marks_unready_and_raises(cache, fake_redis) -> None:
    assert cache.is_ready()
    fake_redis.fail = True

    with pytest.raises(CacheUnavailableError):
        cache.run(lambda client: client.get("k"))

    assert cache.is_ready() is False


def test_probe_waits_for_backoff(cache, fake_redis, clock) -> None:
    fake_redis.fail = True
    assert cache.is_ready() is False
    fake_redis.fail = False

    clock.advance(0.5)
    assert cache.is_ready() is False

    clock.advance(0.6)
    assert cache.is_ready() is True


def test_backoff_grows_and_is_capped(fake_redis, clock) -> None:
    cache = CacheConnection(
        "redis://fake",
        client_factory=lambda url: fake_redis,
        backoff_base_seconds=1.0,
        backoff_cap_seconds=4.0,
        monotonic=clock,
    )
    fake_redis.fail = True
    delays = []
    for _ in range(5):
        start = clock()
        assert cache.is_ready() is False
        delay = cache._next_probe_at - start
        delays.append(delay)
        clock.advance(delay)

    assert delays == [1.0, 2.0, 4.0, 4.0, 4.0]


def test_run_skips_io_while_unready(cache, fake_redis) -> None:
    fake_redis.fail = True
    cache.is_ready()
    before = len(fake_redis.calls)

    with pytest.raises(CacheUnavailableError):
        cache.run(lambda client: client.get("k"))

    assert len(fake_redis.calls) == before


def test_init_get_close_lifecycle(monkeypatch, clock) -> None:
    monkeypatch.setattr(cache_module, "_cache", None)
    fake = FakeRedis(clock)

    handle = cache_module.init_cache("redis://fake", client_factory=lambda url: fake)
    assert cache_module.get_cache() is handle
    assert cache_module.init_cache() is handle

    cache_module.close_cache()
    assert cache_module._cache is None


def test_get_cache_initialises_from_settings(monkeypatch) -> None:
    monkeypatch.setattr(cache_module, "_cache", None)
    handle = cache_module.get_cache()
    try:
        assert handle.url == cache_module.settings.redis_url
    finally:
        cache_module.close_cache()


def test_fake_clock_drives_ttl() -> None:
    clock = FakeClock()
    redis = FakeRedis(clock)
    redis.set("k", "v", ex=5)
    clock.advance(5)
    assert redis.get("k") is None


def test_command_error_keeps_cache_ready(cache) -> None:
    def rejected(client):
        raise ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")

    assert cache.is_ready()
    with pytest.raises(CacheUnavailableError):
        cache.run(rejected)

    assert cache.is_ready() is True
    assert cache.run(lambda client: client.ping()) is True


def test_timeout_marks_unready(cache) -> None:
    def slow(client):
        raise RedisTimeoutError("Timeout reading from socket")

    assert cache.is_ready()
    with pytest.raises(CacheUnavailableError):
        cache.run(slow)

    assert cache.is_ready() is False


def test_repair_flags_are_handed_out_once(cache) -> None:
    cache.flag_for_repair(3)
    cache.flag_for_repair(3)
    cache.flag_for_repair(5)

    assert cache.take_repairs() == {3, 5}
    assert cache.take_repairs() == set()
