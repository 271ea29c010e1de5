"""Application configuration for the LexDoc pipeline."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

PROJECT_ROOT = Path(__file__).resolve().parent.parent

RATE_LIMIT_ENV_PREFIX = "LLM_RATE_LIMIT_"
RATE_LIMIT_KEYS = (
    "requests_per_minute",
    "requests_per_hour",
    "tokens_per_minute",
    "tokens_per_hour",
)


class Settings(BaseModel):
    """Tunables for every pipeline component.

    Values are sourced from environment variables named after the field in
    upper case (``DATABASE_URL``, ``LLM_RETRY_ATTEMPTS`` ...). Components never
    read the environment themselves; they receive a config object derived from
    these settings.
    """

    database_url: str = "sqlite:///./data/lexdoc.db"
    log_level: str = "INFO"

    # Provider selection and credentials
    llm_default_provider: str = "claude"
    anthropic_api_key: Optional[str] = None
    claude_base_url: str = "https://api.anthropic.com/v1"
    claude_api_version: str = "2023-06-01"
    claude_timeout_s: float = 60.0
    claude_default_model: str = "claude-3-5-sonnet-20241022"
    claude_max_tokens: int = 4096
    claude_temperature: float = 0.1
    claude_connection_cache_ttl_s: int = 300
    fake_adapter_delay_s: float = 0.0

    # Retry
    llm_retry_attempts: int = 3
    llm_retry_base_delay_s: float = 1.0
    llm_retry_multiplier: float = 2.0
    llm_retry_max_delay_s: float = 60.0
    llm_retry_jitter: float = 0.1

    # Rate limits; per-provider overrides come from LLM_RATE_LIMIT_<PROVIDER>_<KEY>
    llm_requests_per_minute: int = 60
    llm_requests_per_hour: int = 1000
    llm_tokens_per_minute: int = 40000
    llm_tokens_per_hour: int = 400000
    rate_limits: Dict[str, Dict[str, int]] = Field(default_factory=dict)

    # Metrics
    metrics_hourly_capacity: int = 1000
    metrics_recent_failures_limit: int = 100

    # Anchors
    anchor_prefix: str = "<!-- SECTION_ANCHOR_"
    anchor_suffix: str = " -->"
    anchor_max_title_length: int = 50
    anchor_transliteration: bool = True
    anchor_normalize_case: bool = True

    # Structure analysis
    structure_min_section_length: int = 50
    structure_max_title_length: int = 200
    structure_min_confidence: float = 0.3
    structure_max_analysis_time_s: float = 120.0

    @field_validator("structure_min_confidence", "claude_temperature", "llm_retry_jitter")
    @classmethod
    def _clamp_unit_interval(cls, value: float) -> float:
        return min(1.0, max(0.0, float(value)))

    @field_validator(
        "llm_retry_attempts",
        "llm_requests_per_minute",
        "llm_requests_per_hour",
        "llm_tokens_per_minute",
        "llm_tokens_per_hour",
        "claude_max_tokens",
        "metrics_hourly_capacity",
        "anchor_max_title_length",
    )
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if int(value) < 1:
            raise ValueError("must be a positive integer")
        return int(value)

    @field_validator("llm_default_provider", "log_level")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    def rate_limits_for(self, provider: str) -> Dict[str, int]:
        """Return the effective limits for ``provider`` with defaults filled in."""

        limits = {
            "requests_per_minute": self.llm_requests_per_minute,
            "requests_per_hour": self.llm_requests_per_hour,
            "tokens_per_minute": self.llm_tokens_per_minute,
            "tokens_per_hour": self.llm_tokens_per_hour,
        }
        limits.update(self.rate_limits.get(provider.lower(), {}))
        return limits


def _collect_rate_limits(environ: Mapping[str, str]) -> Dict[str, Dict[str, int]]:
    """Parse ``LLM_RATE_LIMIT_<PROVIDER>_<KEY>`` variables into a nested map."""

    limits: Dict[str, Dict[str, int]] = {}
    for name, raw in environ.items():
        if not name.startswith(RATE_LIMIT_ENV_PREFIX):
            continue
        remainder = name[len(RATE_LIMIT_ENV_PREFIX):].lower()
        for key in RATE_LIMIT_KEYS:
            suffix = f"_{key}"
            if remainder.endswith(suffix) and len(remainder) > len(suffix):
                provider = remainder[: -len(suffix)]
                try:
                    value = int(raw)
                except ValueError:
                    raise ValueError(f"{name} must be an integer, got {raw!r}") from None
                limits.setdefault(provider, {})[key] = max(0, value)
                break
    return limits


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build :class:`Settings` from ``environ`` (defaults to ``os.environ``)."""

    env = os.environ if environ is None else environ
    values: Dict[str, object] = {}
    for name in Settings.model_fields:
        if name == "rate_limits":
            continue
        raw = env.get(name.upper())
        if raw is not None and raw != "":
            values[name] = raw
    values["rate_limits"] = _collect_rate_limits(env)
    return Settings(**values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached process-wide settings."""

    return load_settings()


def reset_settings_cache() -> None:
    """Drop cached settings so the next call re-reads the environment."""

    get_settings.cache_clear()


__all__ = [
    "PROJECT_ROOT",
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings_cache",
]
