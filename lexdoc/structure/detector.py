"""Cascading section detection over extracted document elements."""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence

from .anchors import AnchorGenerator
from .validators import MAX_REGEX_INPUT_LENGTH
from .models import DetectionMetadata, DocumentSection, ExtractedDocument, TextElement
from .patterns import (
    HIGH_CONFIDENCE,
    LEGAL_KEYWORDS,
    LOW_CONFIDENCE,
    MEDIUM_CONFIDENCE,
    SECTION_PATTERNS,
    PatternMatch,
    SectionPattern,
    count_legal_keywords,
    match_section_pattern,
)

if TYPE_CHECKING:  # pragma: no cover
    from lexdoc.config import Settings

LOGGER = logging.getLogger(__name__)

UNTITLED_SECTION = "Untitled Section"
MERGE_REASON = "short_section"

_ANCHOR_UNSAFE_RE = re.compile(r"[<>\x00-\x1f\x7f]")


@dataclass(slots=True)
class DetectorConfig:
    """Thresholds used while detecting and post-processing sections."""

    min_section_length: int = 50
    max_title_length: int = 200
    heuristic_short_length: int = 100
    min_keyword_hits: int = 2
    merge_factor: int = 2
    high_confidence: float = HIGH_CONFIDENCE
    medium_confidence: float = MEDIUM_CONFIDENCE
    low_confidence: float = LOW_CONFIDENCE
    patterns: Sequence[SectionPattern] = SECTION_PATTERNS
    keywords: frozenset[str] = field(default_factory=lambda: LEGAL_KEYWORDS)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "DetectorConfig":
        return cls(
            min_section_length=settings.structure_min_section_length,
            max_title_length=settings.structure_max_title_length,
        )


def _new_section_id() -> str:
    return f"section_{uuid.uuid4().hex[:12]}"


class SectionDetector:
    """Split an :class:`ExtractedDocument` into sections.

    Strategies run in order (headers, then legal patterns, then heuristics) and
    the first one producing sections wins. The result is then filtered and
    short sections are folded into their predecessor.
    """

    def __init__(
        self,
        anchor_generator: AnchorGenerator,
        config: DetectorConfig | None = None,
        *,
        id_factory: Callable[[], str] = _new_section_id,
    ) -> None:
        self.anchor_generator = anchor_generator
        self.config = config or DetectorConfig()
        self._id_factory = id_factory
        self._pattern_cache: Dict[str, Optional[PatternMatch]] = {}
        self._heuristic_cache: Dict[str, bool] = {}

    def detect_sections(self, document: ExtractedDocument) -> List[DocumentSection]:
        elements = list(document.elements)
        LOGGER.info("[detector] starting detection elements=%d", len(elements))
        # Classification caches only live for one document.
        self.clear_pattern_cache()

        sections = self._detect_by_headers(elements)
        if not sections:
            sections = self._detect_by_patterns(elements)
        if not sections:
            sections = self._detect_by_heuristics(elements)

        sections = self._post_process(sections)
        LOGGER.info("[detector] detection completed sections=%d", len(sections))
        return sections

    def clear_pattern_cache(self) -> None:
        self._pattern_cache.clear()
        self._heuristic_cache.clear()

    def cache_stats(self) -> Dict[str, int]:
        return {
            "pattern_entries": len(self._pattern_cache),
            "heuristic_entries": len(self._heuristic_cache),
        }

    # --- Strategies -----------------------------------------------------------
    def _detect_by_headers(self, elements: Sequence[TextElement]) -> List[DocumentSection]:
        sections: List[DocumentSection] = []
        current: List[TextElement] = []
        start = 0
        for position, element in enumerate(elements):
            if element.is_header():
                if current:
                    sections.append(self._header_section(current, start))
                current = [element]
                start = position
            elif current:
                current.append(element)
        if current:
            sections.append(self._header_section(current, start))
        return sections

    def _detect_by_patterns(self, elements: Sequence[TextElement]) -> List[DocumentSection]:
        groups = self._group(elements, lambda element: self.match_pattern(element.content) is not None)
        sections: List[DocumentSection] = []
        for start, members in groups:
            match = self.match_pattern(members[0].content)
            level = match.level if match is not None else 1
            section = self._build_from_elements(
                members, start, level, self.config.medium_confidence, "pattern_based"
            )
            if section is not None:
                sections.append(section)
        return sections

    def _detect_by_heuristics(self, elements: Sequence[TextElement]) -> List[DocumentSection]:
        groups = self._group(elements, self.is_likely_section_start)
        sections: List[DocumentSection] = []
        for start, members in groups:
            section = self._build_from_elements(
                members, start, 1, self.config.low_confidence, "heuristic"
            )
            if section is not None:
                sections.append(section)
        return sections

    @staticmethod
    def _group(
        elements: Sequence[TextElement], starts_section: Callable[[TextElement], bool]
    ) -> List[tuple[int, List[TextElement]]]:
        groups: List[tuple[int, List[TextElement]]] = []
        current: List[TextElement] = []
        start = 0
        for position, element in enumerate(elements):
            if starts_section(element) and current:
                groups.append((start, current))
                current = []
            if not current:
                start = position
            current.append(element)
        if current:
            groups.append((start, current))
        return groups

    # --- Classification -------------------------------------------------------
    def match_pattern(self, text: str) -> Optional[PatternMatch]:
        """Match ``text`` against the pattern table, caching by content."""

        key = text.strip()
        if len(key) > MAX_REGEX_INPUT_LENGTH:
            return None
        if key not in self._pattern_cache:
            self._pattern_cache[key] = match_section_pattern(key, self.config.patterns)
        return self._pattern_cache[key]

    def is_likely_section_start(self, element: TextElement) -> bool:
        content = element.content.strip()
        cached = self._heuristic_cache.get(content)
        if cached is not None:
            return cached
        result = self._classify_heuristically(content)
        self._heuristic_cache[content] = result
        return result

    def _classify_heuristically(self, content: str) -> bool:
        if not content or len(content) > self.config.max_title_length:
            return False
        if content.endswith(":"):
            return True
        if len(content) < self.config.heuristic_short_length and content[0].isupper():
            return True
        return count_legal_keywords(content, self.config.keywords) >= self.config.min_keyword_hits

    # --- Construction ---------------------------------------------------------
    def _header_section(self, members: List[TextElement], start: int) -> DocumentSection:
        header = members[0]
        title = self._clip_title(header.content.strip())
        return self._make_section(
            title=title,
            members=members,
            level=header.level or 1,
            start=start,
            confidence=self.config.high_confidence,
            method="header_based",
        )

    def _build_from_elements(
        self,
        members: List[TextElement],
        start: int,
        level: int,
        confidence: float,
        method: str,
    ) -> Optional[DocumentSection]:
        if not members:
            return None
        content = self._join_content(members)
        if len(content) < self.config.min_section_length:
            return None
        title = self._clip_title(members[0].content.strip())
        if len(title) < 3:
            title = UNTITLED_SECTION
        return self._make_section(
            title=title,
            members=members,
            level=level,
            start=start,
            confidence=confidence,
            method=method,
            content=content,
        )

    def _make_section(
        self,
        *,
        title: str,
        members: List[TextElement],
        level: int,
        start: int,
        confidence: float,
        method: str,
        content: str | None = None,
    ) -> DocumentSection:
        section_id = self._id_factory()
        anchor = self.anchor_generator.generate(section_id, _ANCHOR_UNSAFE_RE.sub(" ", title))
        element_types: List[str] = []
        for element in members:
            if element.type not in element_types:
                element_types.append(element.type)
        return DocumentSection(
            id=section_id,
            title=title,
            content=content if content is not None else self._join_content(members),
            level=max(1, min(level, 6)),
            start_position=start,
            end_position=start + len(members) - 1,
            anchor=anchor,
            elements=list(members),
            confidence=confidence,
            metadata=DetectionMetadata(method=method, element_types=element_types),
        )

    def _clip_title(self, title: str) -> str:
        limit = self.config.max_title_length
        if len(title) > limit:
            return title[:limit] + "..."
        return title

    @staticmethod
    def _join_content(members: Sequence[TextElement]) -> str:
        return "\n".join(element.plain_text() for element in members)

    # --- Post-processing ------------------------------------------------------
    def _post_process(self, sections: List[DocumentSection]) -> List[DocumentSection]:
        minimum = self.config.min_section_length
        retained = [section for section in sections if section.content_length() >= minimum]

        processed: List[DocumentSection] = []
        buffer: Optional[DocumentSection] = None
        for section in retained:
            if buffer is None:
                buffer = section
                continue
            if section.content_length() < minimum * self.config.merge_factor:
                buffer = self._merge(buffer, section)
            else:
                processed.append(buffer)
                buffer = section
        if buffer is not None:
            processed.append(buffer)
        return processed

    @staticmethod
    def _merge(first: DocumentSection, second: DocumentSection) -> DocumentSection:
        title = second.title if len(second.title) > len(first.title) else first.title
        metadata = DetectionMetadata(
            method=first.metadata.method,
            element_types=list(
                dict.fromkeys(first.metadata.element_types + second.metadata.element_types)
            ),
            merged_with=first.metadata.merged_with + [second.id],
            merge_reason=MERGE_REASON,
        )
        return DocumentSection(
            id=first.id,
            title=title,
            content=f"{first.content}\n\n{second.content}",
            level=min(first.level, second.level),
            start_position=first.start_position,
            end_position=second.end_position,
            anchor=first.anchor,
            elements=first.elements + second.elements,
            confidence=min(first.confidence, second.confidence),
            metadata=metadata,
        )


__all__ = ["DetectorConfig", "SectionDetector", "UNTITLED_SECTION"]
