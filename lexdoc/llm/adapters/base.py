"""Contract every provider adapter implements."""

from __future__ import annotations

from typing import List, Protocol, Sequence

from ..models import LLMRequest, LLMResponse


class LLMAdapter(Protocol):
    """Translate :class:`LLMRequest` objects into provider calls."""

    async def execute(self, request: LLMRequest) -> LLMResponse:
        """Run one request; raise an :class:`~lexdoc.llm.errors.LLMError` on failure."""

    async def execute_batch(self, requests: Sequence[LLMRequest]) -> List[LLMResponse]:
        """Run requests in order, aborting on the first failure."""

    async def validate_connection(self) -> bool:
        ...

    def get_provider_name(self) -> str:
        ...

    def get_supported_models(self) -> List[str]:
        ...

    def calculate_cost(self, input_tokens: int, output_tokens: int, model: str | None = None) -> float:
        ...

    def count_tokens(self, text: str, model: str | None = None) -> int:
        ...


__all__ = ["LLMAdapter"]
