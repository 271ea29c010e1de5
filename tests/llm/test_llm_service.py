from __future__ import annotations

from typing import List

import pytest

from lexdoc.config import Settings
from lexdoc.llm.adapters import ClaudeAdapter, FakeAdapter
from lexdoc.llm.errors import LLMConnectionError, ProviderError, RateLimitError
from lexdoc.llm.metrics import UsageMetrics
from lexdoc.llm.rate_limiter import RateLimitConfig, RateLimiter
from lexdoc.llm.retry import RetryConfig, RetryHandler
from lexdoc.llm.service import LLMService, create_llm_service
from lexdoc.llm.store import MemoryCounterStore, SQLCounterStore


class NoSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleeper() -> NoSleep:
    return NoSleep()


@pytest.fixture
def service_factory(scripted_adapter, clock, sleeper):
    def build(**limits) -> LLMService:
        store = MemoryCounterStore(clock=clock)
        return LLMService(
            scripted_adapter,
            RateLimiter("scripted", RateLimitConfig(**limits), store=store, clock=clock),
            RetryHandler(RetryConfig(jitter=0.0), sleep=sleeper),
            UsageMetrics("scripted", store=store, clock=clock),
        )

    return build


async def test_translate_section_reconciles_reserved_tokens(
    service_factory, scripted_adapter, response_factory
) -> None:
    service = service_factory()
    scripted_adapter.enqueue(response_factory("Простыми словами", input_tokens=40, output_tokens=20))

    response = await service.translate_section("a" * 400, document_type="contract", context={"page": 1})

    assert response.content == "Простыми словами"
    sent = scripted_adapter.requests[0]
    assert sent.options["type"] == "section_translation"
    assert sent.options["context"] == {"page": 1}
    assert sent.system_prompt is not None

    usage = service.rate_limiter.get_usage_stats()
    assert usage["requests"]["per_minute"]["used"] == 1
    assert usage["tokens"]["per_minute"]["used"] == 60

    totals = service.metrics.get_stats(days=1)["totals"]
    assert totals["successful_requests"] == 1
    assert totals["total_tokens"] == 60


async def test_failed_call_releases_tokens_and_records_failure(
    service_factory, scripted_adapter
) -> None:
    service = service_factory()
    scripted_adapter.enqueue(ProviderError("bad request", status_code=400))

    with pytest.raises(ProviderError):
        await service.translate_section("clause text")

    usage = service.rate_limiter.get_usage_stats()
    assert usage["tokens"]["per_minute"]["used"] == 0
    assert usage["requests"]["per_minute"]["used"] == 1

    failures = service.metrics.get_recent_failures()
    assert [failure["error_type"] for failure in failures] == ["ProviderError"]
    assert failures[0]["operation_type"] == "section"


async def test_unexpected_error_releases_tokens_and_records_failure(
    service_factory, scripted_adapter
) -> None:
    service = service_factory()
    scripted_adapter.enqueue(ValueError("invalid literal for int()"))

    with pytest.raises(ValueError):
        await service.translate_section("a" * 400)

    assert len(scripted_adapter.requests) == 1
    usage = service.rate_limiter.get_usage_stats()
    assert usage["tokens"]["per_minute"]["used"] == 0
    assert usage["tokens"]["per_hour"]["used"] == 0
    failures = service.metrics.get_recent_failures()
    assert [failure["error_type"] for failure in failures] == ["ValueError"]
    assert service.metrics.get_stats(days=1)["totals"]["failed_requests"] == 1


async def test_transient_failures_are_retried(
    service_factory, scripted_adapter, response_factory, sleeper
) -> None:
    service = service_factory()
    scripted_adapter.enqueue(LLMConnectionError("reset by peer"))
    scripted_adapter.enqueue(response_factory())

    response = await service.translate_section("clause text")

    assert response.content == "translated"
    assert len(scripted_adapter.requests) == 2
    assert sleeper.delays == [1.0]
    assert service.metrics.get_stats(days=1)["totals"]["failed_requests"] == 0


async def test_rate_limited_call_never_reaches_adapter(
    service_factory, scripted_adapter, response_factory
) -> None:
    service = service_factory(requests_per_minute=1)
    scripted_adapter.enqueue(response_factory())
    await service.translate_section("first")

    with pytest.raises(RateLimitError):
        await service.translate_section("second")

    assert len(scripted_adapter.requests) == 1
    assert service.metrics.get_recent_failures()[0]["error_type"] == "RateLimitError"


async def test_batch_collects_failures_by_default(
    service_factory, scripted_adapter, response_factory
) -> None:
    service = service_factory()
    scripted_adapter.enqueue(response_factory("one"))
    scripted_adapter.enqueue(ProviderError("bad section", status_code=400))
    scripted_adapter.enqueue(response_factory("three"))

    result = await service.translate_batch(["s1", "s2", "s3"], document_type="lease")

    assert [response.content for response in result.responses] == ["one", "three"]
    assert [failure.index for failure in result.failures] == [1]
    assert result.failures[0].to_dict()["error"]["kind"] == "provider"
    assert result.total == 3
    assert not result.is_complete()
    assert result.total_cost_usd() == 0.0002
    assert [request.options["batch_index"] for request in scripted_adapter.requests] == [0, 1, 2]


async def test_batch_fail_fast_propagates_first_error(
    service_factory, scripted_adapter, response_factory
) -> None:
    service = service_factory()
    scripted_adapter.enqueue(response_factory())
    scripted_adapter.enqueue(ProviderError("bad section", status_code=400))

    with pytest.raises(ProviderError):
        await service.translate_batch(["s1", "s2", "s3"], fail_fast=True)

    assert len(scripted_adapter.requests) == 2


async def test_batch_stops_when_cancelled(service_factory, scripted_adapter, response_factory) -> None:
    service = service_factory()
    scripted_adapter.enqueue(response_factory())

    result = await service.translate_batch(
        ["s1", "s2", "s3"],
        is_cancelled=lambda: len(scripted_adapter.requests) >= 1,
    )

    assert result.cancelled
    assert len(result.responses) == 1
    assert not result.is_complete()


async def test_empty_batch_is_complete(service_factory, scripted_adapter) -> None:
    result = await service_factory().translate_batch([])
    assert result.is_complete()
    assert scripted_adapter.requests == []


async def test_generate_passes_prompt_options(service_factory, scripted_adapter, response_factory) -> None:
    service = service_factory()
    scripted_adapter.enqueue(response_factory("summary"))

    await service.generate("Summarise", system_prompt="Be brief", max_tokens=100, temperature=0.3, tone="neutral")

    sent = scripted_adapter.requests[0]
    assert (sent.system_prompt, sent.max_tokens, sent.temperature) == ("Be brief", 100, 0.3)
    assert sent.options == {"tone": "neutral"}
    assert service.metrics.get_stats(days=1)["daily_breakdown"][-1]["operation_types"] == ["prompt"]


def test_estimate_cost_without_calling_provider(service_factory, scripted_adapter) -> None:
    service = service_factory()

    estimate = service.estimate_cost("a" * 400)
    assert estimate == {
        "content_length": 400,
        "estimated_input_tokens": 100,
        "estimated_output_tokens": 50,
        "estimated_total_tokens": 150,
        "estimated_cost_usd": 0.0002,
        "model": "scripted-model",
        "provider": "scripted",
    }
    assert service.estimate_cost("a" * 400, task_type="translation")["estimated_output_tokens"] == 100
    assert scripted_adapter.requests == []


def test_usage_stats_combine_limiter_and_metrics(service_factory) -> None:
    stats = service_factory().get_usage_stats(days=3)
    assert stats["provider"] == "scripted"
    assert stats["rate_limiting"]["provider"] == "scripted"
    assert stats["metrics"]["period"]["days"] == 3


async def test_connection_validation(service_factory, scripted_adapter) -> None:
    service = service_factory()
    assert await service.validate_connection() is True

    scripted_adapter.connection_valid = False
    info = await service.get_provider_info()
    assert info == {"name": "scripted", "supported_models": ["scripted-model"], "connection_valid": False}


async def test_connection_validation_swallows_provider_errors(service_factory, scripted_adapter) -> None:
    async def broken() -> bool:
        raise LLMConnectionError("unreachable")

    scripted_adapter.validate_connection = broken
    assert await service_factory().validate_connection() is False


def test_create_llm_service_defaults_to_fake_provider() -> None:
    service = create_llm_service(Settings(llm_default_provider="fake"), MemoryCounterStore())
    assert isinstance(service.adapter, FakeAdapter)
    assert service.default_model == "fake-claude-3-5-sonnet"
    assert service.rate_limiter.provider == "fake"
    assert service.metrics.provider == "fake"


def test_create_llm_service_uses_shared_sql_store_by_default() -> None:
    service = create_llm_service()
    assert isinstance(service.rate_limiter.store, SQLCounterStore)
    assert service.rate_limiter.store is service.metrics.store


def test_create_llm_service_for_claude_requires_key() -> None:
    with pytest.raises(RuntimeError, match="ANTHROPIC_API_KEY"):
        create_llm_service(Settings(llm_default_provider="claude"), MemoryCounterStore())

    service = create_llm_service(
        Settings(
            llm_default_provider="claude",
            anthropic_api_key="sk-test",
            claude_default_model="claude-3-5-haiku-20241022",
        ),
        MemoryCounterStore(),
    )
    assert isinstance(service.adapter, ClaudeAdapter)
    assert service.adapter.config.api_key == "sk-test"
    assert service.default_model == "claude-3-5-haiku-20241022"


def test_create_llm_service_rejects_unknown_provider() -> None:
    with pytest.raises(ValueError, match="Unsupported LLM provider: openai"):
        create_llm_service(Settings(llm_default_provider="openai"), MemoryCounterStore())


async def test_fake_provider_round_trips_anchors() -> None:
    service = create_llm_service(Settings(llm_default_provider="fake"), MemoryCounterStore())
    content = "<!-- SECTION_ANCHOR_s1_subject -->\nThe contractor builds a website."

    response = await service.translate_section(content, document_type="contract")

    assert "<!-- SECTION_ANCHOR_s1_subject -->" in response.content
    assert "**[Translated]:**" in response.content
