"""Provider-neutral request and response containers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

TRANSLATION_SYSTEM_PROMPT = (
    "You are a legal document translator. Translate complex legal text into simple, "
    "understandable language while preserving all important legal meanings and "
    "implications. Copy every <!-- SECTION_ANCHOR_... --> marker exactly as it "
    "appears in the input."
)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass(slots=True)
class LLMRequest:
    """A single completion request."""

    content: str
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    options: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_section_translation(
        cls,
        content: str,
        *,
        document_type: str = "legal_document",
        context: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
        model: Optional[str] = None,
    ) -> "LLMRequest":
        merged = {"type": "section_translation", "document_type": document_type, "context": dict(context or {})}
        merged.update(options or {})
        return cls(
            content=content,
            system_prompt=TRANSLATION_SYSTEM_PROMPT,
            model=model,
            options=merged,
            metadata={
                "request_type": "section_translation",
                "document_type": document_type,
                "created_at": _now_iso(),
            },
        )

    @classmethod
    def for_batch_translation(
        cls,
        sections: Sequence[str],
        *,
        document_type: str = "legal_document",
        context: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
        model: Optional[str] = None,
    ) -> List["LLMRequest"]:
        """Return one request per section, tagged with its batch position."""

        total = len(sections)
        requests: List[LLMRequest] = []
        for index, section in enumerate(sections):
            merged = {
                "type": "batch_translation",
                "document_type": document_type,
                "context": dict(context or {}),
                "batch_index": index,
                "batch_total": total,
            }
            merged.update(options or {})
            requests.append(
                cls(
                    content=section,
                    system_prompt=TRANSLATION_SYSTEM_PROMPT,
                    model=model,
                    options=merged,
                    metadata={
                        "request_type": "batch_translation",
                        "document_type": document_type,
                        "batch_index": index,
                        "batch_total": total,
                        "created_at": _now_iso(),
                    },
                )
            )
        return requests

    def estimated_input_tokens(self) -> int:
        return math.ceil((len(self.content) + len(self.system_prompt or "")) / 4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "system_prompt": self.system_prompt,
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "options": dict(self.options),
            "metadata": dict(self.metadata),
        }


@dataclass(slots=True)
class LLMResponse:
    """Normalised provider response."""

    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    execution_time_ms: float = 0.0
    cost_usd: float = 0.0
    stop_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    usage: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claude_payload(
        cls,
        payload: Mapping[str, Any],
        *,
        execution_time_ms: float,
        cost_usd: float,
        provider: str = "claude",
    ) -> "LLMResponse":
        """Build a response from a Messages API body, joining its text blocks."""

        blocks = payload.get("content") or []
        text = "".join(
            str(block.get("text", ""))
            for block in blocks
            if isinstance(block, Mapping) and block.get("type") == "text"
        )
        usage = dict(payload.get("usage") or {})
        return cls(
            content=text,
            model=str(payload.get("model") or ""),
            input_tokens=int(usage.get("input_tokens") or 0),
            output_tokens=int(usage.get("output_tokens") or 0),
            execution_time_ms=execution_time_ms,
            cost_usd=cost_usd,
            stop_reason=payload.get("stop_reason"),
            metadata={
                "provider": provider,
                "id": payload.get("id"),
                "stop_sequence": payload.get("stop_sequence"),
            },
            usage=usage,
        )

    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def is_success(self) -> bool:
        return bool(self.content) and self.stop_reason != "error"

    def cost_per_token(self) -> float:
        total = self.total_tokens()
        return self.cost_usd / total if total else 0.0

    def tokens_per_second(self) -> float:
        if self.execution_time_ms <= 0:
            return 0.0
        return self.output_tokens / (self.execution_time_ms / 1000)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "model": self.model,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens(),
            "execution_time_ms": self.execution_time_ms,
            "cost_usd": self.cost_usd,
            "stop_reason": self.stop_reason,
            "metadata": dict(self.metadata),
            "usage": dict(self.usage),
            "success": self.is_success(),
        }


__all__ = ["LLMRequest", "LLMResponse", "TRANSLATION_SYSTEM_PROMPT"]
