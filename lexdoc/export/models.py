"""Parsed, risk-annotated content handed to renderers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

RISK_TYPES = ("risk", "contradiction", "warning")
COMPLETED_STATUS = "completed"


@dataclass(frozen=True, slots=True)
class Risk:
    type: str
    text: str

    def __post_init__(self) -> None:
        if self.type not in RISK_TYPES:
            raise ValueError(f"risk type must be one of {RISK_TYPES}, got {self.type!r}")

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "text": self.text}


@dataclass(slots=True)
class Section:
    """One anchor's worth of model output."""

    id: str
    title: str
    original_content: str
    translations: List[str] = field(default_factory=list)
    risks: List[Risk] = field(default_factory=list)
    anchor: Optional[str] = None

    def has_translations(self) -> bool:
        return bool(self.translations)

    def has_risks(self) -> bool:
        return bool(self.risks)

    def main_translation(self) -> Optional[str]:
        return self.translations[0] if self.translations else None

    def risks_by_type(self, risk_type: str) -> List[Risk]:
        return [risk for risk in self.risks if risk.type == risk_type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "original_content": self.original_content,
            "translations": list(self.translations),
            "risks": [risk.to_dict() for risk in self.risks],
            "anchor": self.anchor,
        }


@dataclass(slots=True)
class ParsedContent:
    original_content: str
    sections: List[Section] = field(default_factory=list)
    anchors: List[str] = field(default_factory=list)

    def get_section_by_id(self, section_id: str) -> Optional[Section]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def sections_count(self) -> int:
        return len(self.sections)

    def has_anchors(self) -> bool:
        return bool(self.anchors)

    def all_risks(self) -> List[Risk]:
        return [risk for section in self.sections for risk in section.risks]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_content": self.original_content,
            "sections": [section.to_dict() for section in self.sections],
            "anchors": list(self.anchors),
        }


@dataclass(slots=True)
class ProcessingRecord:
    """A translation job as seen by the export step."""

    status: str
    result: Optional[Mapping[str, Any]] = None

    def is_completed(self) -> bool:
        return self.status == COMPLETED_STATUS


__all__ = ["COMPLETED_STATUS", "ParsedContent", "ProcessingRecord", "RISK_TYPES", "Risk", "Section"]
