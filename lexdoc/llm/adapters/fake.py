"""Offline adapter that fabricates anchor-tagged translations."""

from __future__ import annotations

import asyncio
import logging
import math
import random
import re
import time
from datetime import UTC, datetime
from typing import Awaitable, Callable, Dict, List, Sequence

from ..errors import LLMValidationError, ProviderError
from ..models import LLMRequest, LLMResponse

LOGGER = logging.getLogger(__name__)

PROVIDER_NAME = "fake"
DEFAULT_FAKE_MODEL = "fake-claude-3-5-sonnet"
SUPPORTED_FAKE_MODELS = [DEFAULT_FAKE_MODEL, "fake-claude-3-5-haiku", "fake-claude-sonnet-4"]

INPUT_PER_MILLION = 0.10
OUTPUT_PER_MILLION = 0.50

_ANCHOR_RE = re.compile(r"<!-- SECTION_ANCHOR_([A-Za-z0-9_-]+) -->")

TRANSLATED_LABEL = "**[Translated]:**"
RISK_LABELS = {"risk": "**[Risk found]:**", "warning": "**[Warning]:**"}

GENERIC_TRANSLATION = (
    "In plain words: this is a standard clause that sets out how the parties work with each other."
)

# Canned answers per document type; translations and risks are consumed by anchor position.
FAKE_RESPONSES: Dict[str, Dict[str, List]] = {
    "contract": {
        "translations": [
            "In plain words: the developer builds the website you describe, and you agree to accept and pay for it.",
            "In plain words: the project costs 150,000. Half is paid up front within 5 days, the rest after the work is accepted.",
        ],
        "risks": [
            ("risk", "There is no clear technical specification. Gaps or later changes may lead to disputes and extra charges."),
            ("warning", "The contract does not say who is liable for late payment or late delivery."),
        ],
    },
    "employment": {
        "translations": [
            "In plain words: the company hires you as an employee.",
            "In plain words: you will work as a lead software developer for the stated monthly salary.",
        ],
        "risks": [
            ("risk", "Job duties are not described, which can lead to overtime or conflicts with management."),
            ("warning", "There is no information about benefits or compensation."),
        ],
    },
    "lease": {
        "translations": [
            "In plain words: the landlord rents the apartment to the tenant.",
            "In plain words: you rent the apartment for a monthly fee plus a deposit paid when you move in.",
        ],
        "risks": [
            ("risk", "The deposit equals two monthly payments, which is a heavy upfront cost."),
            ("warning", "There are no clear terms for returning the deposit or for normal wear and tear."),
        ],
    },
}

_DOCUMENT_TYPE_KEYWORDS = (
    ("employment", ("employee", "employer", "employment", "работник", "работодатель", "трудов")),
    ("lease", ("lease", "tenant", "landlord", "rent", "аренд", "наем", "квартир")),
    ("contract", ("contract", "agreement", "договор", "соглашение", "контракт")),
)


class FakeAdapter:
    """Deterministic stand-in for a real provider.

    Every anchor found in the request is echoed back followed by its source
    text, a ``**[Translated]:**`` block and, where the canned template has
    one for that position, a risk block. ``error_rate`` makes a fraction of
    calls fail with a retryable provider error.
    """

    def __init__(
        self,
        delay_s: float = 0.0,
        *,
        error_rate: float = 0.0,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.delay_s = max(0.0, delay_s)
        self.error_rate = min(1.0, max(0.0, error_rate))
        self._rng = rng or random.Random()
        self._sleep = sleep

    async def execute(self, request: LLMRequest) -> LLMResponse:
        if not request.content or not request.content.strip():
            raise LLMValidationError("Request content cannot be empty")

        LOGGER.info(
            "[fake] request content_length=%d model=%s delay=%.2f",
            len(request.content),
            request.model or DEFAULT_FAKE_MODEL,
            self.delay_s,
        )
        if self.delay_s > 0:
            await self._sleep(self.delay_s)

        if self.error_rate and self._rng.random() < self.error_rate:
            raise ProviderError(
                "Fake LLM error for testing",
                status_code=500,
                context={"fake_error": True, "request_content_length": len(request.content)},
            )

        started = time.perf_counter()
        document_type = self.detect_document_type(request.content)
        anchors = _ANCHOR_RE.findall(request.content)
        content = self.render_response(request.content, document_type)
        elapsed_ms = (time.perf_counter() - started) * 1000

        input_tokens = self.count_tokens(request.content)
        output_tokens = self.count_tokens(content)
        return LLMResponse(
            content=content,
            model=request.model or DEFAULT_FAKE_MODEL,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            execution_time_ms=elapsed_ms,
            cost_usd=self.calculate_cost(input_tokens, output_tokens),
            stop_reason="end_turn",
            metadata={
                "provider": PROVIDER_NAME,
                "fake_adapter": True,
                "document_type": document_type,
                "anchors_count": len(anchors),
                "base_delay": self.delay_s,
                "timestamp": datetime.now(UTC).isoformat(),
            },
            usage={"input_tokens": input_tokens, "output_tokens": output_tokens},
        )

    async def execute_batch(self, requests: Sequence[LLMRequest]) -> List[LLMResponse]:
        LOGGER.info("[fake] batch count=%d", len(requests))
        return [await self.execute(request) for request in requests]

    async def validate_connection(self) -> bool:
        return True

    def get_provider_name(self) -> str:
        return PROVIDER_NAME

    def get_supported_models(self) -> List[str]:
        return list(SUPPORTED_FAKE_MODELS)

    def calculate_cost(self, input_tokens: int, output_tokens: int, model: str | None = None) -> float:
        input_cost = (input_tokens / 1_000_000) * INPUT_PER_MILLION
        output_cost = (output_tokens / 1_000_000) * OUTPUT_PER_MILLION
        return round(input_cost + output_cost, 6)

    def count_tokens(self, text: str, model: str | None = None) -> int:
        return math.ceil(len(text) / 4)

    @staticmethod
    def detect_document_type(content: str) -> str:
        lowered = content.lower()
        for document_type, keywords in _DOCUMENT_TYPE_KEYWORDS:
            if any(keyword in lowered for keyword in keywords):
                return document_type
        return "contract"

    def render_response(self, content: str, document_type: str) -> str:
        template = FAKE_RESPONSES.get(document_type, FAKE_RESPONSES["contract"])
        parts = _ANCHOR_RE.split(content)
        if len(parts) < 2:
            return f"{TRANSLATED_LABEL} {template['translations'][0]}"

        blocks: List[str] = []
        # split() alternates text and captured ids: [before, id1, after1, id2, after2, ...]
        for index, position in enumerate(range(1, len(parts), 2)):
            anchor_id = parts[position]
            source = parts[position + 1].strip()
            translations = template["translations"]
            translation = translations[index] if index < len(translations) else GENERIC_TRANSLATION

            lines = [f"<!-- SECTION_ANCHOR_{anchor_id} -->"]
            if source:
                lines.append(source)
            lines.append("")
            lines.append(f"{TRANSLATED_LABEL} {translation}")
            risks = template["risks"]
            if index < len(risks):
                risk_type, risk_text = risks[index]
                lines.append("")
                lines.append(f"{RISK_LABELS[risk_type]} {risk_text}")
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)


__all__ = ["FakeAdapter", "FAKE_RESPONSES", "PROVIDER_NAME", "SUPPORTED_FAKE_MODELS"]
