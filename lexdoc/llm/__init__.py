"""Provider-call path: adapters, quotas, retries, costs and usage metrics."""

from .adapters import ClaudeAdapter, ClaudeConfig, FakeAdapter, LLMAdapter
from .cost import CostCalculator, ModelPricing
from .errors import (
    LLMConnectionError,
    LLMError,
    LLMValidationError,
    ParsingError,
    ProviderError,
    RateLimitError,
)
from .metrics import MetricsConfig, UsageMetrics
from .models import LLMRequest, LLMResponse
from .rate_limiter import RateLimitConfig, RateLimiter
from .retry import RetryConfig, RetryHandler
from .service import BatchFailure, BatchTranslationResult, LLMService, create_llm_service
from .store import CounterStore, MemoryCounterStore, SQLCounterStore

__all__ = [
    "BatchFailure",
    "BatchTranslationResult",
    "ClaudeAdapter",
    "ClaudeConfig",
    "CostCalculator",
    "CounterStore",
    "FakeAdapter",
    "LLMAdapter",
    "LLMConnectionError",
    "LLMError",
    "LLMRequest",
    "LLMResponse",
    "LLMService",
    "LLMValidationError",
    "MemoryCounterStore",
    "MetricsConfig",
    "ModelPricing",
    "ParsingError",
    "ProviderError",
    "RateLimitConfig",
    "RateLimitError",
    "RateLimiter",
    "RetryConfig",
    "RetryHandler",
    "SQLCounterStore",
    "UsageMetrics",
    "create_llm_service",
]
