"""Token-based cost calculation and token estimation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

DEFAULT_MODEL = "claude-3-5-sonnet-20241022"


@dataclass(frozen=True, slots=True)
class ModelPricing:
    """USD per million tokens."""

    input_per_million: float
    output_per_million: float


CLAUDE_PRICING: Dict[str, ModelPricing] = {
    "claude-4-opus-20251205": ModelPricing(15.00, 75.00),
    "claude-4-sonnet-20251205": ModelPricing(3.00, 15.00),
    "claude-3-5-sonnet-20241022": ModelPricing(3.00, 15.00),
    "claude-3-5-haiku-20241022": ModelPricing(0.80, 4.00),
    "claude-3-opus-20240229": ModelPricing(15.00, 75.00),
}
FALLBACK_PRICING = ModelPricing(3.00, 15.00)


@dataclass(frozen=True, slots=True)
class OutputEstimate:
    """Shape of the expected output relative to the input for one task type."""

    content_multiplier: float
    structure_overhead: float
    base_tokens: int
    min_multiplier: float
    max_multiplier: float


OUTPUT_ESTIMATES: Dict[str, OutputEstimate] = {
    "translation": OutputEstimate(0.5, 0.3, 150, 0.4, 1.0),
    "analysis": OutputEstimate(0.3, 0.2, 200, 0.2, 0.8),
    "summarization": OutputEstimate(0.15, 0.05, 100, 0.1, 0.4),
}


class CostCalculator:
    """Price calls from token counts using a per-model rate table."""

    def __init__(
        self,
        pricing: Mapping[str, ModelPricing] | None = None,
        *,
        fallback: ModelPricing = FALLBACK_PRICING,
        default_model: str = DEFAULT_MODEL,
    ) -> None:
        self._pricing = dict(CLAUDE_PRICING if pricing is None else pricing)
        self._fallback = fallback
        self.default_model = default_model

    def calculate_cost(self, input_tokens: int, output_tokens: int, model: Optional[str] = None) -> float:
        pricing = self._pricing.get(model or self.default_model, self._fallback)
        input_cost = (max(0, input_tokens) / 1_000_000) * pricing.input_per_million
        output_cost = (max(0, output_tokens) / 1_000_000) * pricing.output_per_million
        return round(input_cost + output_cost, 6)

    def get_pricing_info(self, model: str) -> Dict[str, object]:
        pricing = self._pricing.get(model)
        if pricing is None:
            return {"model": model, "found": False, "input_per_million": None, "output_per_million": None}
        return {
            "model": model,
            "found": True,
            "input_per_million": pricing.input_per_million,
            "output_per_million": pricing.output_per_million,
        }

    def get_all_pricing(self) -> List[Dict[str, object]]:
        return [
            {
                "model": model,
                "input_per_million": pricing.input_per_million,
                "output_per_million": pricing.output_per_million,
            }
            for model, pricing in self._pricing.items()
        ]

    def supported_models(self) -> List[str]:
        return list(self._pricing)

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate tokens as one per four characters (not a tokenizer)."""

        return math.ceil(len(text) / 4)

    def estimate_cost(self, text: str, model: Optional[str] = None, *, output_ratio: float = 0.5) -> Dict[str, object]:
        input_tokens = self.count_tokens(text)
        output_tokens = int(input_tokens * output_ratio)
        return {
            "model": model or self.default_model,
            "estimated_input_tokens": input_tokens,
            "estimated_output_tokens": output_tokens,
            "estimated_cost_usd": self.calculate_cost(input_tokens, output_tokens, model),
        }

    def estimate_output_tokens(self, input_tokens: int, task_type: str = "translation", *, sections_count: int = 5) -> int:
        """Estimate output size; each section adds 2% to the structural overhead."""

        if input_tokens <= 0:
            return 0
        estimate = OUTPUT_ESTIMATES.get(task_type, OUTPUT_ESTIMATES["translation"])
        complexity = 1.0 + sections_count * 0.02
        total = (
            input_tokens * estimate.content_multiplier
            + input_tokens * estimate.structure_overhead * complexity
            + estimate.base_tokens
        )
        multiplier = max(estimate.min_multiplier, min(estimate.max_multiplier, total / input_tokens))
        return int(round(input_tokens * multiplier))


__all__ = [
    "CLAUDE_PRICING",
    "CostCalculator",
    "DEFAULT_MODEL",
    "FALLBACK_PRICING",
    "ModelPricing",
    "OUTPUT_ESTIMATES",
    "OutputEstimate",
]
