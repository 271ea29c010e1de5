from __future__ import annotations

from lexdoc.llm.errors import LLMConnectionError, ProviderError
from lexdoc.llm.metrics import MetricsConfig, UsageMetrics
from lexdoc.llm.store import MemoryCounterStore


def _metrics(clock, provider: str = "claude", store=None, **config) -> UsageMetrics:
    return UsageMetrics(
        provider,
        MetricsConfig(**config),
        store=store or MemoryCounterStore(clock=clock),
        clock=clock,
    )


def test_stats_aggregate_successes_and_failures(clock, response_factory) -> None:
    metrics = _metrics(clock)
    metrics.record_translation(response_factory(), "contract", "section")
    metrics.record_translation(response_factory(), "contract", "batch")
    metrics.record_failure(ProviderError("upstream down", status_code=500), "lease", "section")

    stats = metrics.get_stats(days=7)

    assert stats["provider"] == "claude"
    assert stats["period"] == {"start_date": "2023-11-07", "end_date": "2023-11-14", "days": 7}
    assert stats["totals"] == {
        "requests": 3,
        "successful_requests": 2,
        "failed_requests": 1,
        "success_rate": 66.67,
        "total_tokens": 30,
        "total_cost_usd": 0.0002,
        "avg_execution_time_ms": 12.5,
        "avg_cost_per_request": 0.0001,
        "avg_tokens_per_request": 15,
    }

    daily = stats["daily_breakdown"]
    assert len(daily) == 8
    assert all(day["total_requests"] == 0 for day in daily[:-1])
    today = daily[-1]
    assert today["date"] == "2023-11-14"
    assert today["models"] == ["scripted-model"]
    assert today["document_types"] == ["contract", "lease"]
    assert today["operation_types"] == ["section", "batch"]

    assert stats["recent_failures"] == [
        {
            "timestamp": "2023-11-14T22:13:20+00:00",
            "document_type": "lease",
            "operation_type": "section",
            "error_type": "ProviderError",
            "error_message": "upstream down",
            "error_code": 500,
        }
    ]


def test_empty_stats_have_zero_rates(clock) -> None:
    totals = _metrics(clock).get_stats(days=1)["totals"]
    assert totals["requests"] == 0
    assert totals["success_rate"] == 0
    assert totals["avg_execution_time_ms"] == 0


def test_current_usage_reports_hour_and_day(clock, response_factory) -> None:
    metrics = _metrics(clock)
    metrics.record_translation(response_factory(input_tokens=100, output_tokens=50), "contract", "section")
    metrics.record_failure(LLMConnectionError("timeout"), "contract", "section")

    usage = metrics.get_current_usage()

    assert usage["current_hour"]["hour"] == "2023-11-14-22"
    assert usage["current_hour"]["total_requests"] == 2
    assert usage["current_hour"]["successful_requests"] == 1
    assert usage["current_hour"]["failed_requests"] == 1
    assert usage["current_hour"]["total_tokens"] == 150
    assert usage["current_day"]["total_requests"] == 2


def test_hourly_buffer_keeps_newest_events(clock, response_factory) -> None:
    metrics = _metrics(clock, hourly_capacity=2)
    for _ in range(3):
        metrics.record_translation(response_factory(), "contract", "section")

    usage = metrics.get_current_usage()
    assert usage["current_hour"]["total_requests"] == 2
    assert usage["current_day"]["total_requests"] == 3


def test_recent_failures_are_newest_first_within_a_day(clock) -> None:
    metrics = _metrics(clock)
    metrics.record_failure(ProviderError("first", status_code=502), "contract", "section")
    clock.advance(3600)
    metrics.record_failure(ProviderError("second", status_code=503), "contract", "section")
    metrics.record_failure(LLMConnectionError("third"), "contract", "section")

    assert [failure["error_message"] for failure in metrics.get_recent_failures()] == [
        "third",
        "second",
        "first",
    ]
    assert [failure["error_code"] for failure in metrics.get_recent_failures(limit=2)] == [0, 503]

    clock.advance(25 * 3600)
    assert metrics.get_recent_failures() == []


def test_providers_sharing_a_store_stay_separate(clock, response_factory) -> None:
    store = MemoryCounterStore(clock=clock)
    claude = _metrics(clock, "claude", store)
    fake = _metrics(clock, "fake", store)

    claude.record_translation(response_factory(), "contract", "section")
    fake.record_failure(ProviderError("Fake LLM error for testing", status_code=500), "contract", "section")

    assert claude.get_recent_failures() == []
    assert claude.get_current_usage()["current_hour"]["total_requests"] == 1
    assert claude.get_provider_stats("fake")["totals"]["failed_requests"] == 1
    assert claude.get_stats()["totals"]["failed_requests"] == 0
