"""Rate-limited, retried provider calls with usage accounting."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from lexdoc.config import Settings, get_settings

from .adapters import ClaudeAdapter, ClaudeConfig, FakeAdapter, LLMAdapter
from .adapters.fake import DEFAULT_FAKE_MODEL
from .cost import DEFAULT_MODEL, CostCalculator
from .errors import LLMError
from .metrics import MetricsConfig, UsageMetrics
from .models import LLMRequest, LLMResponse
from .rate_limiter import RateLimiter
from .retry import RetryConfig, RetryHandler
from .store import CounterStore, SQLCounterStore

LOGGER = logging.getLogger(__name__)

DEFAULT_DOCUMENT_TYPE = "legal_document"


@dataclass(slots=True)
class BatchFailure:
    index: int
    content: str
    error: LLMError

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "content_length": len(self.content),
            "error": self.error.to_dict(),
        }


@dataclass(slots=True)
class BatchTranslationResult:
    """Outcome of :meth:`LLMService.translate_batch`.

    ``responses`` holds successes in dispatch order. ``cancelled`` is set when
    the cancellation flag stopped dispatch before every section was sent.
    """

    responses: List[LLMResponse] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)
    cancelled: bool = False
    total: int = 0

    def is_complete(self) -> bool:
        return not self.cancelled and not self.failures and len(self.responses) == self.total

    def total_cost_usd(self) -> float:
        return round(sum(response.cost_usd for response in self.responses), 6)


class LLMService:
    """Run requests through the rate limiter, retry handler and adapter.

    Each call reserves quota for its estimated input tokens, executes with
    retries, then reconciles the reservation against the tokens the provider
    reported. Failed calls release their token reservation and are recorded
    as failures before the error propagates.
    """

    def __init__(
        self,
        adapter: LLMAdapter,
        rate_limiter: RateLimiter,
        retry_handler: RetryHandler,
        metrics: UsageMetrics,
        *,
        cost_calculator: CostCalculator | None = None,
        default_model: Optional[str] = None,
    ) -> None:
        self.adapter = adapter
        self.rate_limiter = rate_limiter
        self.retry_handler = retry_handler
        self.metrics = metrics
        self.cost_calculator = cost_calculator or CostCalculator()
        self._default_model = default_model

    @property
    def default_model(self) -> str:
        if self._default_model:
            return self._default_model
        models = self.adapter.get_supported_models()
        return models[0] if models else DEFAULT_MODEL

    # --- Translation ----------------------------------------------------------
    async def translate_section(
        self,
        content: str,
        *,
        document_type: str = DEFAULT_DOCUMENT_TYPE,
        context: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
        model: Optional[str] = None,
    ) -> LLMResponse:
        request = LLMRequest.for_section_translation(
            content,
            document_type=document_type,
            context=context,
            options=options,
            model=model,
        )
        LOGGER.info(
            "[llm_service] section translation document_type=%s content_length=%d estimated_tokens=%d",
            document_type,
            len(content),
            request.estimated_input_tokens(),
        )
        return await self._run(
            request,
            document_type=document_type,
            operation_type="section",
            operation_name="section translation",
        )

    async def translate_batch(
        self,
        sections: Sequence[str],
        *,
        document_type: str = DEFAULT_DOCUMENT_TYPE,
        context: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
        model: Optional[str] = None,
        fail_fast: bool = False,
        is_cancelled: Callable[[], bool] | None = None,
    ) -> BatchTranslationResult:
        """Translate sections one after another.

        ``is_cancelled`` is polled before each dispatch; a call already in
        flight is bounded only by the adapter timeout. With ``fail_fast`` the
        first failure propagates; otherwise failures are collected and the
        remaining sections are still sent.
        """

        result = BatchTranslationResult(total=len(sections))
        if not sections:
            return result

        requests = LLMRequest.for_batch_translation(
            sections,
            document_type=document_type,
            context=context,
            options=options,
            model=model,
        )
        LOGGER.info(
            "[llm_service] batch translation document_type=%s sections=%d estimated_tokens=%d",
            document_type,
            len(sections),
            sum(request.estimated_input_tokens() for request in requests),
        )
        started = time.perf_counter()

        for index, request in enumerate(requests):
            if is_cancelled is not None and is_cancelled():
                LOGGER.info("[llm_service] batch cancelled before item %d/%d", index, len(requests))
                result.cancelled = True
                break
            try:
                response = await self._run(
                    request,
                    document_type=document_type,
                    operation_type="batch",
                    operation_name=f"batch translation item {index}",
                )
            except LLMError as exc:
                if fail_fast:
                    raise
                result.failures.append(BatchFailure(index=index, content=sections[index], error=exc))
                continue
            result.responses.append(response)

        elapsed_ms = (time.perf_counter() - started) * 1000
        LOGGER.info(
            "[llm_service] batch finished sections=%d succeeded=%d failed=%d cancelled=%s elapsed_ms=%.1f cost_usd=%.6f",
            len(sections),
            len(result.responses),
            len(result.failures),
            result.cancelled,
            elapsed_ms,
            result.total_cost_usd(),
        )
        if result.failures:
            LOGGER.warning(
                "[llm_service] batch had %d failures: %s",
                len(result.failures),
                [failure.index for failure in result.failures],
            )
        return result

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        **options: Any,
    ) -> LLMResponse:
        request = LLMRequest(
            content=prompt,
            system_prompt=system_prompt,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            options=dict(options),
            metadata={"request_type": "general"},
        )
        return await self._run(
            request,
            document_type="general",
            operation_type="prompt",
            operation_name="general LLM request",
        )

    async def _run(
        self,
        request: LLMRequest,
        *,
        document_type: str,
        operation_type: str,
        operation_name: str,
    ) -> LLMResponse:
        estimated = request.estimated_input_tokens()
        reserved = 0
        started = time.perf_counter()
        try:
            self.rate_limiter.check_and_reserve(estimated)
            reserved = estimated
            response = await self.retry_handler.execute(
                lambda: self.adapter.execute(request),
                operation_name=operation_name,
            )
        except Exception as exc:
            if reserved:
                self.rate_limiter.release(reserved)
            self.metrics.record_failure(exc, document_type, operation_type, model=request.model)
            LOGGER.error(
                "[llm_service] %s failed kind=%s elapsed_ms=%.1f: %s",
                operation_name,
                exc.kind if isinstance(exc, LLMError) else type(exc).__name__,
                (time.perf_counter() - started) * 1000,
                exc,
            )
            raise

        self.rate_limiter.record_usage(response.total_tokens(), reserved)
        self.metrics.record_translation(response, document_type, operation_type)
        LOGGER.info(
            "[llm_service] %s completed model=%s response_length=%d elapsed_ms=%.1f cost_usd=%.6f",
            operation_name,
            response.model,
            len(response.content),
            (time.perf_counter() - started) * 1000,
            response.cost_usd,
        )
        return response

    # --- Introspection --------------------------------------------------------
    def estimate_cost(
        self,
        content: str,
        model: Optional[str] = None,
        *,
        task_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Estimate tokens and cost without calling the provider.

        Output tokens default to half the input; pass ``task_type`` to use the
        per-task output estimate instead.
        """

        input_tokens = LLMRequest(content=content, model=model).estimated_input_tokens()
        if task_type is None:
            output_tokens = int(input_tokens * 0.5)
        else:
            output_tokens = self.cost_calculator.estimate_output_tokens(input_tokens, task_type)
        actual_model = model or self.default_model
        return {
            "content_length": len(content),
            "estimated_input_tokens": input_tokens,
            "estimated_output_tokens": output_tokens,
            "estimated_total_tokens": input_tokens + output_tokens,
            "estimated_cost_usd": self.adapter.calculate_cost(input_tokens, output_tokens, actual_model),
            "model": actual_model,
            "provider": self.adapter.get_provider_name(),
        }

    def get_usage_stats(self, days: int = 7) -> Dict[str, Any]:
        return {
            "provider": self.adapter.get_provider_name(),
            "rate_limiting": self.rate_limiter.get_usage_stats(),
            "metrics": self.metrics.get_stats(days),
        }

    async def validate_connection(self) -> bool:
        try:
            return await self.adapter.validate_connection()
        except LLMError as exc:
            LOGGER.error(
                "[llm_service] connection validation failed provider=%s: %s",
                self.adapter.get_provider_name(),
                exc,
            )
            return False

    async def get_provider_info(self) -> Dict[str, Any]:
        return {
            "name": self.adapter.get_provider_name(),
            "supported_models": self.adapter.get_supported_models(),
            "connection_valid": await self.validate_connection(),
        }


def create_llm_service(
    settings: Settings | None = None,
    store: CounterStore | None = None,
    *,
    adapter: LLMAdapter | None = None,
) -> LLMService:
    """Wire a service for ``settings.llm_default_provider`` (``claude`` or ``fake``).

    Rate-limit counters and metrics default to the shared SQL store so every
    worker pointed at the same database draws from one quota.
    """

    settings = settings or get_settings()
    provider = settings.llm_default_provider.lower()
    store = store or SQLCounterStore()
    cost_calculator = CostCalculator(default_model=settings.claude_default_model)

    default_model: Optional[str]
    if adapter is not None:
        default_model = None
    elif provider == "fake":
        adapter = FakeAdapter(settings.fake_adapter_delay_s)
        default_model = DEFAULT_FAKE_MODEL
    elif provider == "claude":
        if not settings.anthropic_api_key:
            raise RuntimeError("ANTHROPIC_API_KEY must be set to use the claude provider")
        adapter = ClaudeAdapter(ClaudeConfig.from_settings(settings), cost_calculator=cost_calculator)
        default_model = settings.claude_default_model
    else:
        raise ValueError(f"Unsupported LLM provider: {settings.llm_default_provider}")

    provider_name = adapter.get_provider_name()
    LOGGER.info("[llm_service] created provider=%s", provider_name)
    return LLMService(
        adapter,
        RateLimiter.for_provider(provider_name, settings, store=store),
        RetryHandler(RetryConfig.from_settings(settings)),
        UsageMetrics(provider_name, MetricsConfig.from_settings(settings), store=store),
        cost_calculator=cost_calculator,
        default_model=default_model,
    )


__all__ = [
    "BatchFailure",
    "BatchTranslationResult",
    "LLMService",
    "create_llm_service",
]
