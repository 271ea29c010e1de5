"""Per-provider request and token quotas over minute and hour windows."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from lexdoc.config import get_settings

from .errors import RateLimitError
from .store import CounterStore, MemoryCounterStore

if TYPE_CHECKING:  # pragma: no cover
    from lexdoc.config import Settings

LOGGER = logging.getLogger(__name__)

MINUTE_TTL_S = 65
HOUR_TTL_S = 3665


@dataclass(slots=True)
class RateLimitConfig:
    """Quota per window; defaults match the documented provider defaults."""

    requests_per_minute: int = 60
    requests_per_hour: int = 1000
    tokens_per_minute: int = 40000
    tokens_per_hour: int = 400000

    @classmethod
    def from_settings(cls, settings: "Settings", provider: str) -> "RateLimitConfig":
        limits = settings.rate_limits_for(provider)
        return cls(
            requests_per_minute=limits["requests_per_minute"],
            requests_per_hour=limits["requests_per_hour"],
            tokens_per_minute=limits["tokens_per_minute"],
            tokens_per_hour=limits["tokens_per_hour"],
        )


@dataclass(frozen=True, slots=True)
class _Window:
    name: str
    seconds: int
    ttl_s: int
    key_format: str


_MINUTE = _Window("minute", 60, MINUTE_TTL_S, "%Y-%m-%d-%H-%M")
_HOUR = _Window("hour", 3600, HOUR_TTL_S, "%Y-%m-%d-%H")


class RateLimiter:
    """Admission control against counters shared by all workers.

    Counters live in a :class:`CounterStore` keyed by provider, counter type,
    and window start, so every process talking to one provider draws from the
    same quota. Admission uses atomic increments: a counter is bumped first and
    rolled back if the new value exceeds its limit, which keeps concurrent
    callers from overrunning a window.
    """

    def __init__(
        self,
        provider: str,
        config: RateLimitConfig | None = None,
        *,
        store: CounterStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.provider = provider
        self.config = config or RateLimitConfig()
        self.store: CounterStore = store or MemoryCounterStore(clock=clock)
        self._clock = clock

    @classmethod
    def for_provider(
        cls,
        provider: str,
        settings: "Settings | None" = None,
        *,
        store: CounterStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> "RateLimiter":
        settings = settings or get_settings()
        return cls(
            provider,
            RateLimitConfig.from_settings(settings, provider),
            store=store,
            clock=clock,
        )

    # --- Admission ------------------------------------------------------------
    def check_and_reserve(self, estimated_tokens: int = 0) -> None:
        """Reserve one request and ``estimated_tokens`` or raise :class:`RateLimitError`."""

        now = self._now()
        reserved: List[Tuple[str, int]] = []
        try:
            for window, limit in (
                (_MINUTE, self.config.requests_per_minute),
                (_HOUR, self.config.requests_per_hour),
            ):
                key = self._key("requests", window, now)
                used = self.store.increment(key, 1, window.ttl_s)
                reserved.append((key, 1))
                if used > limit:
                    raise self._request_error(limit, window, now)

            if estimated_tokens > 0:
                for window, limit in (
                    (_MINUTE, self.config.tokens_per_minute),
                    (_HOUR, self.config.tokens_per_hour),
                ):
                    key = self._key("tokens", window, now)
                    used = self.store.increment(key, estimated_tokens, window.ttl_s)
                    reserved.append((key, estimated_tokens))
                    if used > limit:
                        raise self._token_error(limit, window, now, estimated_tokens)
        except RateLimitError:
            for key, amount in reserved:
                self.store.increment(key, -amount)
            raise

        LOGGER.debug(
            "[rate_limiter] reserved provider=%s estimated_tokens=%d",
            self.provider,
            estimated_tokens,
        )

    def record_usage(self, actual_tokens: int, reserved_tokens: int = 0) -> None:
        """Reconcile a reservation with the tokens the call actually used."""

        delta = int(actual_tokens) - int(reserved_tokens)
        if delta == 0:
            return
        now = self._now()
        try:
            for window in (_MINUTE, _HOUR):
                self.store.increment(self._key("tokens", window, now), delta, window.ttl_s)
        except Exception:  # noqa: BLE001 - usage bookkeeping must not fail the call
            LOGGER.warning(
                "[rate_limiter] failed to record usage provider=%s delta=%d",
                self.provider,
                delta,
                exc_info=True,
            )
            return
        LOGGER.debug(
            "[rate_limiter] usage reconciled provider=%s actual=%d reserved=%d",
            self.provider,
            actual_tokens,
            reserved_tokens,
        )

    def release(self, reserved_tokens: int) -> None:
        """Return an unused token reservation, e.g. after a failed call."""

        self.record_usage(0, reserved_tokens)

    # --- Introspection --------------------------------------------------------
    def get_usage_stats(self) -> Dict[str, object]:
        now = self._now()

        def window_stats(kind: str, window: _Window, limit: int) -> Dict[str, int]:
            used = self.store.get_int(self._key(kind, window, now))
            return {"used": used, "limit": limit, "remaining": max(0, limit - used)}

        return {
            "provider": self.provider,
            "requests": {
                "per_minute": window_stats("requests", _MINUTE, self.config.requests_per_minute),
                "per_hour": window_stats("requests", _HOUR, self.config.requests_per_hour),
            },
            "tokens": {
                "per_minute": window_stats("tokens", _MINUTE, self.config.tokens_per_minute),
                "per_hour": window_stats("tokens", _HOUR, self.config.tokens_per_hour),
            },
        }

    def reset(self) -> None:
        now = self._now()
        for kind in ("requests", "tokens"):
            for window in (_MINUTE, _HOUR):
                self.store.delete(self._key(kind, window, now))
        LOGGER.debug("[rate_limiter] reset provider=%s", self.provider)

    # --- Helpers --------------------------------------------------------------
    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), UTC)

    def _key(self, kind: str, window: _Window, now: datetime) -> str:
        return f"llm_rate_limit:{self.provider}:{kind}:{window.name}:{now.strftime(window.key_format)}"

    @staticmethod
    def _seconds_left(window: _Window, now: datetime) -> int:
        elapsed = now.second if window is _MINUTE else now.minute * 60 + now.second
        return max(1, window.seconds - elapsed)

    def _request_error(self, limit: int, window: _Window, now: datetime) -> RateLimitError:
        return RateLimitError(
            f"Request rate limit exceeded for {self.provider}. "
            f"Limit: {limit} requests per {window.seconds} seconds",
            retry_after=self._seconds_left(window, now),
            context={
                "provider": self.provider,
                "limit": limit,
                "window_seconds": window.seconds,
                "error_type": "request_rate_limit",
            },
        )

    def _token_error(
        self, limit: int, window: _Window, now: datetime, estimated: Optional[int] = None
    ) -> RateLimitError:
        return RateLimitError(
            f"Token rate limit exceeded for {self.provider}. "
            f"Limit: {limit} tokens per {window.seconds} seconds",
            retry_after=self._seconds_left(window, now),
            context={
                "provider": self.provider,
                "limit": limit,
                "window_seconds": window.seconds,
                "estimated_tokens": estimated,
                "error_type": "token_rate_limit",
            },
        )


__all__ = ["HOUR_TTL_S", "MINUTE_TTL_S", "RateLimitConfig", "RateLimiter"]
