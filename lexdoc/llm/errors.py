"""Error taxonomy for the provider-call path."""

from __future__ import annotations

from typing import Any, Dict, Optional


class LLMError(Exception):
    """Base class for provider-call failures.

    ``retryable`` tells :class:`~lexdoc.llm.retry.RetryHandler` whether another
    attempt may succeed; ``retry_after`` is a provider or limiter hint in
    seconds.
    """

    kind = "llm_error"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.retry_after = retry_after
        self.context: Dict[str, Any] = dict(context or {})

    def add_context(self, key: str, value: Any) -> "LLMError":
        self.context[key] = value
        return self

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
            "context": dict(self.context),
        }
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        if self.retry_after is not None:
            payload["retry_after"] = self.retry_after
        return payload


class LLMValidationError(LLMError):
    """Malformed request or unsupported model; never retried."""

    kind = "validation"


class LLMConnectionError(LLMError):
    """Network failure, timeout, or rejected credentials."""

    kind = "connection"
    retryable = True

    def __init__(self, message: str, *, retryable: bool = True, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retryable = retryable


class RateLimitError(LLMError):
    """Local quota or provider quota exhausted."""

    kind = "rate_limit"
    retryable = True

    @property
    def error_type(self) -> str:
        return str(self.context.get("error_type", "api_rate_limit"))


class ProviderError(LLMError):
    """Non-2xx provider response other than authentication or quota."""

    kind = "provider"
    retryable = True

    def __init__(self, message: str, *, body: str = "", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.body = body
        if self.status_code is not None and 400 <= self.status_code < 500:
            self.retryable = self.status_code in {408, 413, 422}


class ParsingError(LLMError):
    """Model output is missing or mangles the anchor markers."""

    kind = "parsing"

    def __init__(self, message: str, *, text_size: int, anchors_found: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.text_size = text_size
        self.anchors_found = anchors_found
        self.context.setdefault("text_size", text_size)
        self.context.setdefault("anchors_found", anchors_found)


__all__ = [
    "LLMConnectionError",
    "LLMError",
    "LLMValidationError",
    "ParsingError",
    "ProviderError",
    "RateLimitError",
]
