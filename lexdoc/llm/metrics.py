"""Usage metrics: a rolling hourly event buffer plus per-day aggregates."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from .store import CounterStore, MemoryCounterStore

if TYPE_CHECKING:  # pragma: no cover
    from lexdoc.config import Settings

    from .models import LLMResponse

LOGGER = logging.getLogger(__name__)

HOURLY_KEY_PREFIX = "llm_metrics:recent:"
DAILY_KEY_PREFIX = "llm_daily_aggregates:"
RECENT_FAILURE_HOURS = 24


@dataclass(slots=True)
class MetricsConfig:
    hourly_capacity: int = 1000
    hourly_ttl_s: int = 25 * 3600
    daily_ttl_s: int = 90 * 24 * 3600
    recent_failures_limit: int = 100

    @classmethod
    def from_settings(cls, settings: "Settings") -> "MetricsConfig":
        return cls(
            hourly_capacity=settings.metrics_hourly_capacity,
            recent_failures_limit=settings.metrics_recent_failures_limit,
        )


def _empty_aggregate(date_key: str, provider: str) -> Dict[str, Any]:
    return {
        "date": date_key,
        "provider": provider,
        "total_requests": 0,
        "successful_requests": 0,
        "failed_requests": 0,
        "total_tokens": 0,
        "total_input_tokens": 0,
        "total_output_tokens": 0,
        "total_cost_usd": 0.0,
        "total_execution_time_ms": 0.0,
        "avg_execution_time_ms": 0.0,
        "document_types": [],
        "operation_types": [],
        "models": [],
    }


class UsageMetrics:
    """Record per-call usage for one provider.

    Every call appends an event to the hour's buffer (capped at
    ``hourly_capacity``, oldest dropped) and folds it into the day's aggregate.
    Both live in the shared :class:`CounterStore` so all workers contribute to
    the same numbers.
    """

    def __init__(
        self,
        provider: str = "claude",
        config: MetricsConfig | None = None,
        *,
        store: CounterStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.provider = provider
        self.config = config or MetricsConfig()
        self.store: CounterStore = store or MemoryCounterStore(clock=clock)
        self._clock = clock

    # --- Recording ------------------------------------------------------------
    def record_translation(self, response: "LLMResponse", document_type: str, operation_type: str) -> None:
        event = {
            "provider": self.provider,
            "operation_type": operation_type,
            "document_type": document_type,
            "model": response.model,
            "input_tokens": response.input_tokens,
            "output_tokens": response.output_tokens,
            "total_tokens": response.total_tokens(),
            "execution_time_ms": response.execution_time_ms,
            "cost_usd": response.cost_usd,
            "success": True,
            "timestamp": self._now().isoformat(),
        }
        self._record(event)
        LOGGER.debug(
            "[metrics] translation recorded provider=%s model=%s tokens=%d",
            self.provider,
            response.model,
            event["total_tokens"],
        )

    def record_failure(
        self,
        error: BaseException,
        document_type: str,
        operation_type: str,
        model: Optional[str] = None,
    ) -> None:
        event = {
            "provider": self.provider,
            "operation_type": operation_type,
            "document_type": document_type,
            "model": model,
            "input_tokens": 0,
            "output_tokens": 0,
            "total_tokens": 0,
            "execution_time_ms": 0,
            "cost_usd": 0,
            "success": False,
            "error_type": type(error).__name__,
            "error_message": str(error),
            "error_code": getattr(error, "status_code", None) or 0,
            "timestamp": self._now().isoformat(),
        }
        self._record(event)
        LOGGER.debug(
            "[metrics] failure recorded provider=%s error_type=%s",
            self.provider,
            event["error_type"],
        )

    def _record(self, event: Dict[str, Any]) -> None:
        now = self._now()
        capacity = self.config.hourly_capacity

        def append(current: Any) -> List[Dict[str, Any]]:
            events = list(current) if isinstance(current, list) else []
            events.append(event)
            return events[-capacity:]

        self.store.update_json(self._hour_key(now), append, self.config.hourly_ttl_s)
        self.store.update_json(
            self._day_key(now),
            lambda current: self._fold(current, event, now),
            self.config.daily_ttl_s,
        )

    def _fold(self, current: Any, event: Dict[str, Any], now: datetime) -> Dict[str, Any]:
        aggregate = _empty_aggregate(now.strftime("%Y-%m-%d"), self.provider)
        if isinstance(current, dict):
            aggregate.update(current)

        aggregate["total_requests"] += 1
        if event["success"]:
            aggregate["successful_requests"] += 1
            aggregate["total_tokens"] += int(event["total_tokens"])
            aggregate["total_input_tokens"] += int(event["input_tokens"])
            aggregate["total_output_tokens"] += int(event["output_tokens"])
            aggregate["total_cost_usd"] += float(event["cost_usd"])
            aggregate["total_execution_time_ms"] += float(event["execution_time_ms"])
            aggregate["avg_execution_time_ms"] = (
                aggregate["total_execution_time_ms"] / aggregate["successful_requests"]
            )
            if event["model"] and event["model"] not in aggregate["models"]:
                aggregate["models"].append(event["model"])
        else:
            aggregate["failed_requests"] += 1

        if event["document_type"] and event["document_type"] not in aggregate["document_types"]:
            aggregate["document_types"].append(event["document_type"])
        if event["operation_type"] and event["operation_type"] not in aggregate["operation_types"]:
            aggregate["operation_types"].append(event["operation_type"])
        return aggregate

    # --- Reporting ------------------------------------------------------------
    def get_stats(self, days: int = 7) -> Dict[str, Any]:
        end = self._now()
        start = end - timedelta(days=days)
        daily = self._daily_aggregates(start, end)

        total_requests = sum(day["total_requests"] for day in daily)
        successful = sum(day["successful_requests"] for day in daily)
        failed = sum(day["failed_requests"] for day in daily)
        total_tokens = sum(day["total_tokens"] for day in daily)
        total_cost = sum(float(day["total_cost_usd"]) for day in daily)
        total_time = sum(float(day["total_execution_time_ms"]) for day in daily)

        return {
            "period": {
                "start_date": start.strftime("%Y-%m-%d"),
                "end_date": end.strftime("%Y-%m-%d"),
                "days": days,
            },
            "totals": {
                "requests": total_requests,
                "successful_requests": successful,
                "failed_requests": failed,
                "success_rate": round(successful / total_requests * 100, 2) if total_requests else 0,
                "total_tokens": total_tokens,
                "total_cost_usd": round(total_cost, 6),
                "avg_execution_time_ms": round(total_time / successful, 2) if successful else 0,
                "avg_cost_per_request": round(total_cost / successful, 6) if successful else 0,
                "avg_tokens_per_request": round(total_tokens / successful) if successful else 0,
            },
            "daily_breakdown": daily,
            "recent_failures": self.get_recent_failures(self.config.recent_failures_limit),
            "provider": self.provider,
        }

    def get_current_usage(self) -> Dict[str, Any]:
        now = self._now()
        events = self._hour_events(now)
        hour: Dict[str, Any] = {
            "hour": now.strftime("%Y-%m-%d-%H"),
            "total_requests": len(events),
            "successful_requests": 0,
            "failed_requests": 0,
            "total_tokens": 0,
            "total_cost_usd": 0.0,
        }
        for event in events:
            if event.get("success"):
                hour["successful_requests"] += 1
                hour["total_tokens"] += int(event.get("total_tokens") or 0)
                hour["total_cost_usd"] += float(event.get("cost_usd") or 0)
            else:
                hour["failed_requests"] += 1

        day = self.store.get_json(self._day_key(now))
        if not isinstance(day, dict):
            day = _empty_aggregate(now.strftime("%Y-%m-%d"), self.provider)
        return {"current_hour": hour, "current_day": day, "provider": self.provider}

    def get_provider_stats(self, provider: str, days: int = 7) -> Dict[str, Any]:
        """Stats for another provider sharing this store."""

        if provider == self.provider:
            return self.get_stats(days)
        other = UsageMetrics(provider, self.config, store=self.store, clock=self._clock)
        return other.get_stats(days)

    def get_recent_failures(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Failures from the last 24 hours, most recent first."""

        now = self._now()
        failures: List[Dict[str, Any]] = []
        for offset in range(RECENT_FAILURE_HOURS):
            for event in reversed(self._hour_events(now - timedelta(hours=offset))):
                if event.get("success", True):
                    continue
                failures.append(
                    {
                        "timestamp": event.get("timestamp", ""),
                        "document_type": event.get("document_type") or "unknown",
                        "operation_type": event.get("operation_type") or "unknown",
                        "error_type": event.get("error_type") or "unknown",
                        "error_message": event.get("error_message") or "unknown error",
                        "error_code": event.get("error_code") or 0,
                    }
                )
                if len(failures) >= limit:
                    return failures
        return failures

    # --- Helpers --------------------------------------------------------------
    def _daily_aggregates(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        aggregates: List[Dict[str, Any]] = []
        current = start
        while current.date() <= end.date():
            date_key = current.strftime("%Y-%m-%d")
            aggregate = _empty_aggregate(date_key, self.provider)
            stored = self.store.get_json(f"{DAILY_KEY_PREFIX}{self.provider}:{date_key}")
            if isinstance(stored, dict):
                aggregate.update(stored)
            aggregates.append(aggregate)
            current += timedelta(days=1)
        return aggregates

    def _hour_events(self, moment: datetime) -> List[Dict[str, Any]]:
        events = self.store.get_json(self._hour_key(moment))
        if not isinstance(events, list):
            return []
        return [event for event in events if isinstance(event, dict) and event.get("provider") == self.provider]

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), UTC)

    def _hour_key(self, moment: datetime) -> str:
        return f"{HOURLY_KEY_PREFIX}{moment.strftime('%Y-%m-%d-%H')}"

    def _day_key(self, moment: datetime) -> str:
        return f"{DAILY_KEY_PREFIX}{self.provider}:{moment.strftime('%Y-%m-%d')}"


__all__ = ["MetricsConfig", "UsageMetrics"]
