from __future__ import annotations

import pytest

from lexdoc.config import reset_settings_cache
from lexdoc.database import get_engine
from lexdoc.llm.errors import RateLimitError
from lexdoc.llm.rate_limiter import RateLimitConfig, RateLimiter
from lexdoc.llm.store import MemoryCounterStore, SQLCounterStore


def _limiter(clock, **limits) -> RateLimiter:
    return RateLimiter(
        "claude",
        RateLimitConfig(**limits),
        store=MemoryCounterStore(clock=clock),
        clock=clock,
    )


def test_request_quota_is_enforced_per_minute(clock) -> None:
    limiter = _limiter(clock, requests_per_minute=5)
    for _ in range(5):
        limiter.check_and_reserve()

    with pytest.raises(RateLimitError) as exc:
        limiter.check_and_reserve()

    error = exc.value
    assert error.message == "Request rate limit exceeded for claude. Limit: 5 requests per 60 seconds"
    assert error.error_type == "request_rate_limit"
    assert error.retry_after == 40
    assert error.retryable

    minute = limiter.get_usage_stats()["requests"]["per_minute"]
    assert minute == {"used": 5, "limit": 5, "remaining": 0}


def test_next_minute_window_admits_again(clock) -> None:
    limiter = _limiter(clock, requests_per_minute=1)
    limiter.check_and_reserve()
    with pytest.raises(RateLimitError):
        limiter.check_and_reserve()

    clock.advance(40)
    limiter.check_and_reserve()
    assert limiter.get_usage_stats()["requests"]["per_hour"]["used"] == 2


def test_token_quota_rolls_back_whole_reservation(clock) -> None:
    limiter = _limiter(clock, tokens_per_minute=100)
    limiter.check_and_reserve(60)

    with pytest.raises(RateLimitError) as exc:
        limiter.check_and_reserve(60)
    assert exc.value.error_type == "token_rate_limit"
    assert exc.value.context["estimated_tokens"] == 60

    stats = limiter.get_usage_stats()
    assert stats["requests"]["per_minute"]["used"] == 1
    assert stats["tokens"]["per_minute"]["used"] == 60
    assert stats["tokens"]["per_hour"]["used"] == 60


def test_record_usage_and_release_reconcile_tokens(clock) -> None:
    limiter = _limiter(clock)
    limiter.check_and_reserve(60)
    limiter.record_usage(80, 60)
    assert limiter.get_usage_stats()["tokens"]["per_minute"]["used"] == 80

    limiter.release(80)
    assert limiter.get_usage_stats()["tokens"]["per_minute"]["used"] == 0


def test_reset_clears_current_windows(clock) -> None:
    limiter = _limiter(clock)
    limiter.check_and_reserve(10)
    limiter.reset()
    stats = limiter.get_usage_stats()
    assert stats["requests"]["per_minute"]["used"] == 0
    assert stats["tokens"]["per_hour"]["remaining"] == 400000


def test_workers_sharing_a_store_share_the_quota(clock) -> None:
    store = SQLCounterStore(get_engine(), clock=clock)
    config = RateLimitConfig(requests_per_minute=3)
    first = RateLimiter("claude", config, store=store, clock=clock)
    second = RateLimiter("claude", config, store=store, clock=clock)
    other = RateLimiter("fake", config, store=store, clock=clock)

    first.check_and_reserve()
    second.check_and_reserve()
    first.check_and_reserve()
    with pytest.raises(RateLimitError):
        second.check_and_reserve()
    other.check_and_reserve()


def test_for_provider_reads_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_RATE_LIMIT_CLAUDE_REQUESTS_PER_MINUTE", "2")
    monkeypatch.setenv("LLM_TOKENS_PER_HOUR", "5000")
    reset_settings_cache()

    claude = RateLimiter.for_provider("claude")
    fake = RateLimiter.for_provider("fake")

    assert claude.config.requests_per_minute == 2
    assert claude.config.tokens_per_hour == 5000
    assert fake.config.requests_per_minute == 60
