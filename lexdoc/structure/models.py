"""Data models shared by the structure analysis pipeline."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

ELEMENT_TYPES = ("header", "paragraph", "list", "text")

_TAG_RE = re.compile(r"<[^>]+>")


@dataclass(frozen=True, slots=True)
class TextElement:
    """A typed unit of text produced by the upstream extractor."""

    content: str
    type: str = "text"
    level: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.type not in ELEMENT_TYPES:
            raise ValueError(f"unknown element type: {self.type!r}")
        if self.type == "header" and self.level is None:
            object.__setattr__(self, "level", 1)

    def is_header(self) -> bool:
        return self.type == "header"

    def plain_text(self) -> str:
        return _TAG_RE.sub("", self.content).strip()


@dataclass(slots=True)
class ExtractedDocument:
    """Ordered elements of one source document."""

    path: str
    mime_type: str
    elements: List[TextElement] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    total_pages: int = 0

    def plain_text(self) -> str:
        return "\n".join(element.plain_text() for element in self.elements)

    def headers(self) -> List[TextElement]:
        return [element for element in self.elements if element.is_header()]

    def element_types(self) -> List[str]:
        return sorted({element.type for element in self.elements})


@dataclass(slots=True)
class DetectionMetadata:
    """How a section was detected and whether it absorbed a neighbour."""

    method: str
    element_types: List[str] = field(default_factory=list)
    merged_with: List[str] = field(default_factory=list)
    merge_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "detection_method": self.method,
            "element_types": list(self.element_types),
        }
        if self.merged_with:
            payload["merged_with"] = list(self.merged_with)
            payload["merge_reason"] = self.merge_reason
        return payload


@dataclass(slots=True)
class DocumentSection:
    """A contiguous, anchored span of a document."""

    id: str
    title: str
    content: str
    level: int
    start_position: int
    end_position: int
    anchor: str
    elements: List[TextElement] = field(default_factory=list)
    confidence: float = 1.0
    metadata: DetectionMetadata = field(default_factory=lambda: DetectionMetadata(method="unknown"))
    subsections: List["DocumentSection"] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.level < 1:
            raise ValueError(f"section level must be >= 1, got {self.level}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be between 0.0 and 1.0, got {self.confidence}")

    def content_length(self) -> int:
        return len(self.content)

    def has_subsections(self) -> bool:
        return bool(self.subsections)

    def iter_subsections(self) -> Iterator["DocumentSection"]:
        """Yield every nested subsection depth-first."""

        for subsection in self.subsections:
            yield subsection
            yield from subsection.iter_subsections()

    def all_subsections(self) -> List["DocumentSection"]:
        return list(self.iter_subsections())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "level": self.level,
            "start_position": self.start_position,
            "end_position": self.end_position,
            "anchor": self.anchor,
            "confidence": self.confidence,
            "metadata": self.metadata.to_dict(),
            "subsections": [subsection.to_dict() for subsection in self.subsections],
        }


@dataclass(slots=True)
class StructureAnalysisResult:
    """Outcome of analysing one document; never raised, always returned."""

    sections: List[DocumentSection]
    analysis_time: float = 0.0
    average_confidence: float = 0.0
    statistics: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def is_successful(self) -> bool:
        return bool(self.sections)

    def sections_count(self) -> int:
        return len(self.sections)

    def all_sections(self) -> List[DocumentSection]:
        flattened: List[DocumentSection] = []
        for section in self.sections:
            flattened.append(section)
            flattened.extend(section.iter_subsections())
        return flattened

    def find_section_by_id(self, section_id: str) -> Optional[DocumentSection]:
        for section in self.all_sections():
            if section.id == section_id:
                return section
        return None

    def all_anchors(self) -> List[str]:
        return [section.anchor for section in self.all_sections()]

    def sections_by_level(self, level: int) -> List[DocumentSection]:
        return [section for section in self.all_sections() if section.level == level]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sections": [section.to_dict() for section in self.sections],
            "analysis_time": self.analysis_time,
            "average_confidence": self.average_confidence,
            "statistics": dict(self.statistics),
            "metadata": dict(self.metadata),
            "warnings": list(self.warnings),
            "successful": self.is_successful(),
        }


__all__ = [
    "DetectionMetadata",
    "DocumentSection",
    "ELEMENT_TYPES",
    "ExtractedDocument",
    "StructureAnalysisResult",
    "TextElement",
]
