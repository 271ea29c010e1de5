"""Exponential-backoff retries for provider calls."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, TypeVar

import httpx

from .errors import LLMConnectionError, LLMError

if TYPE_CHECKING:  # pragma: no cover
    from lexdoc.config import Settings

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class RetryConfig:
    max_attempts: int = 3
    base_delay_s: float = 1.0
    multiplier: float = 2.0
    max_delay_s: float = 60.0
    jitter: float = 0.1

    @classmethod
    def from_settings(cls, settings: "Settings") -> "RetryConfig":
        return cls(
            max_attempts=settings.llm_retry_attempts,
            base_delay_s=settings.llm_retry_base_delay_s,
            multiplier=settings.llm_retry_multiplier,
            max_delay_s=settings.llm_retry_max_delay_s,
            jitter=settings.llm_retry_jitter,
        )


class RetryHandler:
    """Run an async operation, retrying transient :class:`LLMError` failures.

    Only errors flagged ``retryable`` are retried; everything else propagates
    on the first failure. After ``max_attempts`` the last error propagates
    unchanged. Sleeping uses ``asyncio.sleep`` so only the calling task waits.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        operation_name: str = "LLM operation",
    ) -> T:
        attempts = max(1, self.config.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                LOGGER.debug("[retry] %s attempt=%d/%d", operation_name, attempt, attempts)
                return await operation()
            except httpx.TransportError as exc:
                error: Exception = LLMConnectionError(f"Connection failed: {exc}")
                error.__cause__ = exc
            except LLMError as exc:
                error = exc

            retryable = self.is_retryable(error)
            LOGGER.warning(
                "[retry] %s attempt %d/%d failed: %s (will_retry=%s)",
                operation_name,
                attempt,
                attempts,
                error,
                retryable and attempt < attempts,
            )
            if not retryable or attempt >= attempts:
                if retryable:
                    LOGGER.error("[retry] all %d attempts failed for %s", attempts, operation_name)
                raise error

            delay = self.get_delay(attempt, error)
            LOGGER.info("[retry] retrying %s in %.2fs", operation_name, delay)
            await self._sleep(delay)

        raise AssertionError("unreachable")  # pragma: no cover

    @staticmethod
    def is_retryable(error: BaseException) -> bool:
        if isinstance(error, LLMError):
            return bool(error.retryable)
        return isinstance(error, httpx.TransportError)

    def get_delay(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """Return the wait before attempt ``attempt + 1``."""

        retry_after = getattr(error, "retry_after", None)
        if retry_after:
            return min(float(retry_after), self.config.max_delay_s)

        delay = self.config.base_delay_s * (self.config.multiplier ** (attempt - 1))
        if self.config.jitter > 0:
            delay += self._rng.uniform(0, delay * self.config.jitter)
        return min(delay, self.config.max_delay_s)


__all__ = ["RetryConfig", "RetryHandler"]
