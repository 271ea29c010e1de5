"""Test configuration for LexDoc."""

from __future__ import annotations

import asyncio
import inspect
import sys
from pathlib import Path
from typing import Generator, List

import pytest  # noqa: E402

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from lexdoc.config import reset_settings_cache  # noqa: E402
from lexdoc.database import reset_database_state  # noqa: E402
from lexdoc.llm.models import LLMRequest, LLMResponse  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Generator[None, None, None]:
    """Provide isolated configuration for each test."""

    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("LLM_DEFAULT_PROVIDER", "fake")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    reset_settings_cache()
    reset_database_state()
    yield
    reset_settings_cache()
    reset_database_state()


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    # 2023-11-14 22:13:20 UTC, so 40 seconds remain in the current minute.
    return FakeClock()


class ScriptedAdapter:
    """Adapter stub that pops scripted responses or exceptions."""

    def __init__(self, script: List[LLMResponse | Exception] | None = None) -> None:
        self._script: List[LLMResponse | Exception] = list(script or [])
        self.requests: List[LLMRequest] = []
        self.connection_valid = True

    def enqueue(self, item: LLMResponse | Exception) -> None:
        self._script.append(item)

    async def execute(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        if not self._script:
            raise AssertionError("ScriptedAdapter was called without a queued response")
        item = self._script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def execute_batch(self, requests):
        return [await self.execute(request) for request in requests]

    async def validate_connection(self) -> bool:
        return self.connection_valid

    def get_provider_name(self) -> str:
        return "scripted"

    def get_supported_models(self) -> List[str]:
        return ["scripted-model"]

    def calculate_cost(self, input_tokens: int, output_tokens: int, model: str | None = None) -> float:
        return round(input_tokens * 0.000001 + output_tokens * 0.000002, 6)

    def count_tokens(self, text: str, model: str | None = None) -> int:
        return len(text) // 4


@pytest.fixture
def scripted_adapter() -> ScriptedAdapter:
    return ScriptedAdapter()


def _make_response(content: str = "translated", *, input_tokens: int = 10, output_tokens: int = 5) -> LLMResponse:
    return LLMResponse(
        content=content,
        model="scripted-model",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
        execution_time_ms=12.5,
        cost_usd=0.0001,
        stop_reason="end_turn",
    )


@pytest.fixture
def response_factory():
    return _make_response


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        loop = asyncio.new_event_loop()
        try:
            signature = inspect.signature(pyfuncitem.obj)
            kwargs = {
                name: pyfuncitem.funcargs[name]
                for name in signature.parameters
                if name in pyfuncitem.funcargs
            }
            loop.run_until_complete(pyfuncitem.obj(**kwargs))
        finally:
            loop.close()
        return True
    return None
