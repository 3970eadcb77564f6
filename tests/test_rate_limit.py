"""Tests for join admission control."""

import pytest
from redis.exceptions import ResponseError

from tests.conftest import COOLDOWN_SECONDS, PER_MINUTE
from tokenline.services.rate_limit import (
    AdmissionOutcome,
    RateLimiter,
    hour_count_key,
    last_join_key,
    minute_count_key,
)


def test_first_join_is_allowed(rate_limiter) -> None:
    decision = rate_limiter.check_join(1, 10)
    assert decision.outcome is AdmissionOutcome.ALLOWED
    assert decision.allowed
    assert decision.retry_after_seconds is None


def test_record_join_sets_marker_and_counters(rate_limiter, fake_redis) -> None:
    assert rate_limiter.record_join(1, 10) is True

    assert fake_redis.get(last_join_key(1, 10)) is not None
    assert fake_redis.ttl(last_join_key(1, 10)) == COOLDOWN_SECONDS
    assert fake_redis.get(minute_count_key(1)) == "1"
    assert fake_redis.ttl(minute_count_key(1)) == 60
    assert fake_redis.get(hour_count_key(1)) == "1"
    assert fake_redis.ttl(hour_count_key(1)) == 3600


def test_cooldown_blocks_rejoin_with_remaining_seconds(rate_limiter, clock) -> None:
    rate_limiter.record_join(1, 10)
    clock.advance(10)

    decision = rate_limiter.check_join(1, 10)

    assert decision.outcome is AdmissionOutcome.DENIED
    assert decision.retry_after_seconds == COOLDOWN_SECONDS - 10
    assert "rejoining this queue" in decision.message


def test_cooldown_is_per_queue(rate_limiter) -> None:
    rate_limiter.record_join(1, 10)
    assert rate_limiter.check_join(1, 11).allowed


def test_cooldown_expires(rate_limiter, clock) -> None:
    rate_limiter.record_join(1, 10)
    clock.advance(COOLDOWN_SECONDS + 1)
    assert rate_limiter.check_join(1, 10).outcome is AdmissionOutcome.ALLOWED


def test_window_expiry_is_not_extended_by_later_joins(rate_limiter, fake_redis, clock) -> None:
    rate_limiter.record_join(1, 10)
    clock.advance(40)
    rate_limiter.record_join(1, 11)

    assert fake_redis.get(minute_count_key(1)) == "2"
    assert fake_redis.ttl(minute_count_key(1)) == 20
    assert fake_redis.ttl(hour_count_key(1)) == 3600 - 40


def test_per_minute_cap(rate_limiter, clock) -> None:
    for queue_id in range(PER_MINUTE):
        assert rate_limiter.check_join(1, queue_id).allowed
        rate_limiter.record_join(1, queue_id)
        clock.advance(1)

    decision = rate_limiter.check_join(1, 99)

    assert decision.outcome is AdmissionOutcome.DENIED
    assert 0 < decision.retry_after_seconds <= 60
    assert "joined too many queues" in decision.message


def test_per_minute_window_resets(rate_limiter, clock) -> None:
    for queue_id in range(PER_MINUTE):
        rate_limiter.record_join(1, queue_id)
    clock.advance(61)
    assert rate_limiter.check_join(1, 99).allowed


def test_per_hour_cap_reports_minutes(cache, clock) -> None:
    limiter = RateLimiter(cache, cooldown_seconds=0, per_minute=100, per_hour=3, clock=clock)
    for queue_id in range(3):
        limiter.record_join(1, queue_id)
    clock.advance(120)

    decision = limiter.check_join(1, 99)

    assert decision.outcome is AdmissionOutcome.DENIED
    assert decision.retry_after_seconds == 3600 - 120
    assert "58 minutes" in decision.message


def test_cooldown_is_checked_before_caps(rate_limiter, clock) -> None:
    for queue_id in range(PER_MINUTE):
        rate_limiter.record_join(1, queue_id)
    clock.advance(5)

    decision = rate_limiter.check_join(1, 0)

    assert "rejoining this queue" in decision.message
    assert decision.retry_after_seconds == COOLDOWN_SECONDS - 5


def test_limits_are_per_user(rate_limiter) -> None:
    for queue_id in range(PER_MINUTE):
        rate_limiter.record_join(1, queue_id)
    assert rate_limiter.check_join(2, 0).allowed


def test_check_fails_open_when_cache_down(rate_limiter, fake_redis) -> None:
    fake_redis.fail = True

    decision = rate_limiter.check_join(1, 10)

    assert decision.outcome is AdmissionOutcome.DEGRADED
    assert decision.allowed


def test_record_is_noop_when_cache_down(rate_limiter, fake_redis) -> None:
    fake_redis.fail = True
    assert rate_limiter.record_join(1, 10) is False

    fake_redis.fail = False
    fake_redis.flushall()
    assert fake_redis.get(minute_count_key(1)) is None


def test_degraded_check_does_not_hit_cache_during_backoff(rate_limiter, fake_redis) -> None:
    fake_redis.fail = True
    rate_limiter.check_join(1, 10)
    calls_after_failure = len(fake_redis.calls)

    rate_limiter.check_join(1, 10)
    rate_limiter.record_join(1, 10)

    assert len(fake_redis.calls) == calls_after_failure


def test_limits_apply_again_after_recovery(rate_limiter, fake_redis, clock) -> None:
    fake_redis.fail = True
    assert rate_limiter.check_join(1, 10).outcome is AdmissionOutcome.DEGRADED
    assert rate_limiter.record_join(1, 10) is False

    fake_redis.fail = False
    clock.advance(2)

    assert rate_limiter.check_join(1, 10).outcome is AdmissionOutcome.ALLOWED
    assert rate_limiter.record_join(1, 10) is True
    assert rate_limiter.check_join(1, 10).outcome is AdmissionOutcome.DENIED


@pytest.mark.parametrize("stored", ["not-a-number", ""])
def test_corrupt_counter_is_treated_as_zero(rate_limiter, fake_redis, stored) -> None:
    fake_redis.set(minute_count_key(1), stored)
    assert rate_limiter.check_join(1, 10).allowed


def test_default_limits_come_from_settings(cache) -> None:
    from tokenline.core.settings import settings

    limiter = RateLimiter(cache)
    assert limiter.cooldown_seconds == settings.queue_join_cooldown_seconds
    assert limiter.per_minute == settings.queue_join_rate_limit_per_min
    assert limiter.per_hour == settings.queue_join_rate_limit_per_hour


def test_rejected_command_does_not_disable_limiter(rate_limiter, cache, fake_redis, mocker) -> None:
    # Servers older than Redis 7 reject EXPIRE ... NX.
    mocker.patch.object(
        fake_redis,
        "expire",
        side_effect=ResponseError("ERR wrong number of arguments for 'expire' command"),
    )

    assert rate_limiter.record_join(1, 10) is False

    assert cache.is_ready() is True
    assert rate_limiter.check_join(2, 10).outcome is AdmissionOutcome.ALLOWED
