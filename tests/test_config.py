from __future__ import annotations

import logging

import pytest

from lexdoc.config import Settings, get_settings, load_settings, reset_settings_cache
from lexdoc.utils.logging import configure_logging


def test_defaults_without_environment() -> None:
    settings = load_settings({})
    assert settings.llm_default_provider == "claude"
    assert settings.rate_limits == {}
    assert settings.rate_limits_for("claude") == {
        "requests_per_minute": 60,
        "requests_per_hour": 1000,
        "tokens_per_minute": 40000,
        "tokens_per_hour": 400000,
    }


def test_environment_values_are_coerced() -> None:
    settings = load_settings(
        {
            "LLM_REQUESTS_PER_MINUTE": "5",
            "STRUCTURE_MIN_CONFIDENCE": "0.5",
            "ANCHOR_TRANSLITERATION": "false",
            "LLM_DEFAULT_PROVIDER": " fake ",
            "ANTHROPIC_API_KEY": "",
        }
    )
    assert settings.llm_requests_per_minute == 5
    assert settings.structure_min_confidence == 0.5
    assert settings.anchor_transliteration is False
    assert settings.llm_default_provider == "fake"
    assert settings.anthropic_api_key is None


def test_provider_rate_limit_overrides() -> None:
    settings = load_settings(
        {
            "LLM_RATE_LIMIT_CLAUDE_REQUESTS_PER_MINUTE": "7",
            "LLM_RATE_LIMIT_FAKE_TOKENS_PER_HOUR": "-3",
            "LLM_RATE_LIMIT_REQUESTS_PER_MINUTE": "9",
        }
    )
    assert settings.rate_limits == {
        "claude": {"requests_per_minute": 7},
        "fake": {"tokens_per_hour": 0},
    }
    assert settings.rate_limits_for("CLAUDE")["requests_per_minute"] == 7
    assert settings.rate_limits_for("claude")["tokens_per_hour"] == 400000


def test_non_integer_rate_limit_is_rejected() -> None:
    with pytest.raises(ValueError, match="LLM_RATE_LIMIT_CLAUDE_TOKENS_PER_MINUTE must be an integer"):
        load_settings({"LLM_RATE_LIMIT_CLAUDE_TOKENS_PER_MINUTE": "lots"})


def test_unit_interval_fields_are_clamped() -> None:
    settings = Settings(structure_min_confidence=2, claude_temperature=-1, llm_retry_jitter=0.25)
    assert settings.structure_min_confidence == 1.0
    assert settings.claude_temperature == 0.0
    assert settings.llm_retry_jitter == 0.25


def test_counts_must_be_positive() -> None:
    with pytest.raises(ValueError, match="must be a positive integer"):
        Settings(llm_retry_attempts=0)


def test_cached_settings_follow_reset(monkeypatch: pytest.MonkeyPatch) -> None:
    first = get_settings()
    assert first.llm_default_provider == "fake"
    assert get_settings() is first

    monkeypatch.setenv("LLM_DEFAULT_PROVIDER", "claude")
    assert get_settings().llm_default_provider == "fake"

    reset_settings_cache()
    assert get_settings().llm_default_provider == "claude"


def test_configure_logging_installs_one_handler() -> None:
    logger = configure_logging("debug")
    handlers = list(logger.handlers)

    assert logger.name == "lexdoc"
    assert logger.level == logging.DEBUG
    assert configure_logging("warning").handlers == handlers
    assert logger.level == logging.WARNING
    assert configure_logging("nonsense").level == logging.INFO
    assert configure_logging().level == logging.DEBUG
