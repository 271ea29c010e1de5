"""Anthropic Messages API adapter."""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import httpx

from ..cost import CostCalculator, DEFAULT_MODEL
from ..errors import LLMConnectionError, LLMError, LLMValidationError, ProviderError, RateLimitError
from ..models import LLMRequest, LLMResponse

if TYPE_CHECKING:  # pragma: no cover
    from lexdoc.config import Settings

LOGGER = logging.getLogger(__name__)

PROVIDER_NAME = "claude"


@dataclass(slots=True)
class ClaudeConfig:
    api_key: str
    base_url: str = "https://api.anthropic.com/v1"
    api_version: str = "2023-06-01"
    timeout_s: float = 60.0
    default_model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    temperature: float = 0.1
    connection_cache_ttl_s: float = 300.0

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ClaudeConfig":
        return cls(
            api_key=settings.anthropic_api_key or "",
            base_url=settings.claude_base_url,
            api_version=settings.claude_api_version,
            timeout_s=settings.claude_timeout_s,
            default_model=settings.claude_default_model,
            max_tokens=settings.claude_max_tokens,
            temperature=settings.claude_temperature,
            connection_cache_ttl_s=settings.claude_connection_cache_ttl_s,
        )

    @property
    def messages_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/messages"


class ClaudeAdapter:
    """Send :class:`LLMRequest` objects to Claude over ``httpx``.

    A fresh :class:`httpx.AsyncClient` is opened per call unless a client is
    injected; tests pass an ``httpx.MockTransport`` through ``transport``.
    Timeouts are enforced by the client and surface as retryable
    :class:`LLMConnectionError`.
    """

    def __init__(
        self,
        config: ClaudeConfig,
        *,
        cost_calculator: CostCalculator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.cost_calculator = cost_calculator or CostCalculator(default_model=config.default_model)
        self._transport = transport
        self._client = client
        self._clock = clock
        self._connection_cache: Dict[str, Tuple[bool, float]] = {}

    # --- LLMAdapter -----------------------------------------------------------
    async def execute(self, request: LLMRequest) -> LLMResponse:
        self._validate_request(request)
        model = request.model or self.config.default_model
        payload = self._build_payload(request, model)

        LOGGER.info(
            "[claude] request model=%s content_length=%d has_system_prompt=%s estimated_input_tokens=%d",
            model,
            len(request.content),
            bool(request.system_prompt),
            request.estimated_input_tokens(),
        )
        started = time.perf_counter()
        try:
            response = await self._post(payload)
        except httpx.TimeoutException as exc:
            raise LLMConnectionError(
                f"Connection to {PROVIDER_NAME} timed out after {self.config.timeout_s} seconds",
                context={"provider": PROVIDER_NAME, "timeout": self.config.timeout_s, "error_type": "timeout"},
            ) from exc
        except httpx.TransportError as exc:
            raise LLMConnectionError(
                f"Network error connecting to {PROVIDER_NAME}: {exc}",
                context={"provider": PROVIDER_NAME, "original_error": str(exc), "error_type": "network"},
            ) from exc

        if not response.is_success:
            self._raise_for_status(response, model)

        try:
            body = response.json()
        except ValueError as exc:
            LOGGER.error("[claude] failed to parse response model=%s: %s", model, exc)
            raise LLMError(f"Failed to parse Claude API response: {exc}") from exc
        if not isinstance(body, Mapping):
            raise LLMError("Invalid response format from Claude API")

        elapsed_ms = (time.perf_counter() - started) * 1000
        usage = body.get("usage") or {}
        cost = self.calculate_cost(
            int(usage.get("input_tokens") or 0),
            int(usage.get("output_tokens") or 0),
            model,
        )
        result = LLMResponse.from_claude_payload(
            body,
            execution_time_ms=elapsed_ms,
            cost_usd=cost,
            provider=PROVIDER_NAME,
        )
        if not result.model:
            result.model = model

        LOGGER.info(
            "[claude] completed model=%s elapsed_ms=%.1f input_tokens=%d output_tokens=%d cost_usd=%.6f",
            result.model,
            elapsed_ms,
            result.input_tokens,
            result.output_tokens,
            result.cost_usd,
        )
        return result

    async def execute_batch(self, requests: Sequence[LLMRequest]) -> List[LLMResponse]:
        responses: List[LLMResponse] = []
        for index, request in enumerate(requests):
            if not isinstance(request, LLMRequest):
                raise LLMValidationError(f"Invalid request at index {index}. Expected LLMRequest instance.")
            try:
                responses.append(await self.execute(request))
            except LLMError as exc:
                LOGGER.error("[claude] batch request %d failed: %s", index, exc)
                exc.add_context("batch_index", index)
                raise
        return responses

    async def validate_connection(self) -> bool:
        cache_key = hashlib.md5(self.config.api_key.encode("utf-8")).hexdigest()
        cached = self._connection_cache.get(cache_key)
        now = self._clock()
        if cached is not None and cached[1] > now:
            return cached[0]

        try:
            response = await self.execute(LLMRequest(content="test", max_tokens=10))
            valid = response.is_success()
        except LLMError as exc:
            LOGGER.warning("[claude] connection validation failed: %s", exc)
            valid = False
        self._connection_cache[cache_key] = (valid, now + self.config.connection_cache_ttl_s)
        return valid

    def get_provider_name(self) -> str:
        return PROVIDER_NAME

    def get_supported_models(self) -> List[str]:
        return self.cost_calculator.supported_models()

    def calculate_cost(self, input_tokens: int, output_tokens: int, model: str | None = None) -> float:
        return self.cost_calculator.calculate_cost(input_tokens, output_tokens, model)

    def count_tokens(self, text: str, model: str | None = None) -> int:
        return self.cost_calculator.count_tokens(text)

    # --- Helpers --------------------------------------------------------------
    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        headers = {
            "x-api-key": self.config.api_key,
            "anthropic-version": self.config.api_version,
            "content-type": "application/json",
        }
        if self._client is not None:
            return await self._client.post(self.config.messages_url, headers=headers, json=payload)
        timeout = httpx.Timeout(self.config.timeout_s)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            return await client.post(self.config.messages_url, headers=headers, json=payload)

    def _build_payload(self, request: LLMRequest, model: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "max_tokens": request.max_tokens if request.max_tokens is not None else self.config.max_tokens,
            "temperature": request.temperature if request.temperature is not None else self.config.temperature,
            "messages": [{"role": "user", "content": request.content}],
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        return payload

    def _validate_request(self, request: LLMRequest) -> None:
        if not request.content or not request.content.strip():
            raise LLMValidationError("Request content cannot be empty")
        if request.model and request.model not in self.get_supported_models():
            raise LLMValidationError(
                f"Unsupported model: {request.model}",
                context={"provider": PROVIDER_NAME, "model": request.model},
            )
        if request.temperature is not None and not 0.0 <= request.temperature <= 1.0:
            raise LLMValidationError("Temperature must be between 0 and 1")
        if request.max_tokens is not None and request.max_tokens < 1:
            raise LLMValidationError("Max tokens must be positive")

    def _raise_for_status(self, response: httpx.Response, model: str) -> None:
        status = response.status_code
        body = response.text
        LOGGER.error("[claude] client error status=%d model=%s body=%s", status, model, body[:500])

        if status == 401:
            raise LLMConnectionError(
                f"Invalid API key for {PROVIDER_NAME} provider",
                retryable=False,
                status_code=401,
                context={"provider": PROVIDER_NAME, "error_type": "invalid_api_key"},
            )
        if status == 429:
            retry_after = _parse_retry_after(response.headers.get("retry-after"))
            message = f"Rate limit exceeded for {PROVIDER_NAME}"
            if retry_after is not None:
                message += f". Retry after {retry_after:g} seconds"
            raise RateLimitError(
                message,
                status_code=429,
                retry_after=retry_after,
                context={
                    "provider": PROVIDER_NAME,
                    "retry_after": retry_after,
                    "error_type": "api_rate_limit",
                },
            )
        raise ProviderError(
            f"Claude API error (HTTP {status}): {body or response.reason_phrase}",
            status_code=status,
            body=body,
            context={"provider": PROVIDER_NAME, "model": model},
        )


def _parse_retry_after(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    return value if value >= 0 else None


__all__ = ["ClaudeAdapter", "ClaudeConfig", "PROVIDER_NAME"]
