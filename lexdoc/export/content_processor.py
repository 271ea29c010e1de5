"""Recover sections, translations and risks from anchor-tagged model output."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from lexdoc.llm.errors import ParsingError
from lexdoc.structure.anchors import AnchorConfig
from lexdoc.structure.validators import ValidationError

from .models import ParsedContent, ProcessingRecord, Risk, Section

LOGGER = logging.getLogger(__name__)

MAIN_SECTION_ID = "main"
MAIN_SECTION_TITLE = "Document"
INTRO_SECTION_ID = "intro"
INTRO_SECTION_TITLE = "Introduction"
UNTITLED = "Untitled"

TRANSLATION_LABELS = ("**[Translated]:**", "**[Переведено]:**")
RISK_LABELS: Dict[str, Tuple[str, ...]] = {
    "contradiction": ("**[Contradiction found]:**", "**[Найдено противоречие]:**"),
    "risk": ("**[Risk found]:**", "**[Найден риск]:**"),
    "warning": ("**[Warning]:**", "**[Предупреждение]:**", "**[Внимание]:**"),
}

_HEADING_RE = re.compile(r"^#+\s*(.+)")
_NUMBERED_RE = re.compile(r"^\d+\.?\s*(.+)")


def _block_pattern(labels: Iterable[str]) -> re.Pattern[str]:
    # A block runs until the next "**[" label or the end of the span.
    alternatives = "|".join(re.escape(label) for label in labels)
    return re.compile(rf"(?:{alternatives})\s*(.+?)(?=\*\*\[|\Z)", re.DOTALL)


_TRANSLATION_RE = _block_pattern(TRANSLATION_LABELS)
_TRANSLATION_START_RE = re.compile("|".join(re.escape(label) for label in TRANSLATION_LABELS))
_RISK_RES = {risk_type: _block_pattern(labels) for risk_type, labels in RISK_LABELS.items()}


class ContentProcessor:
    """Split model output at anchor markers into :class:`Section` objects.

    Anchor literals are matched exactly as :class:`AnchorGenerator` writes
    them; a marker with altered spacing or case is not an anchor.
    """

    def __init__(self, config: AnchorConfig | None = None) -> None:
        self.config = config or AnchorConfig()
        self._anchor_re = re.compile(
            re.escape(self.config.prefix) + r"([A-Za-z0-9_-]+)" + re.escape(self.config.suffix)
        )

    def parse_content(self, content: str) -> ParsedContent:
        anchors = self._anchor_re.findall(content)
        if not anchors:
            section = Section(id=MAIN_SECTION_ID, title=MAIN_SECTION_TITLE, original_content=content)
            return ParsedContent(original_content=content, sections=[section], anchors=[])

        parts = self._anchor_re.split(content)
        sections: List[Section] = []
        intro = parts[0].strip()
        if intro:
            sections.append(Section(id=INTRO_SECTION_ID, title=INTRO_SECTION_TITLE, original_content=intro))

        # split() alternates text and captured ids: [before, id1, after1, id2, after2, ...]
        for position in range(1, len(parts), 2):
            anchor_id = parts[position]
            body = parts[position + 1].strip()
            if not body:
                continue
            sections.append(self._parse_section(anchor_id, body))

        LOGGER.debug("[content_processor] parsed anchors=%d sections=%d", len(anchors), len(sections))
        return ParsedContent(original_content=content, sections=sections, anchors=anchors)

    def parse_document_result(self, record: ProcessingRecord) -> ParsedContent:
        if not record.is_completed() or not record.result:
            raise ValidationError(
                reason="document_not_completed",
                message="Document must be completed and have result",
            )
        content = record.result.get("content")
        if isinstance(content, (int, float)) and not isinstance(content, bool):
            content = str(content)
        return self.parse_content(content if isinstance(content, str) else "")

    def remove_anchors(self, content: str) -> str:
        """Delete every anchor marker; all other characters are kept."""

        return self._anchor_re.sub("", content)

    def replace_anchors(self, content: str, replacements: Mapping[str, str]) -> str:
        """Swap mapped anchor markers for their replacement text."""

        for anchor_id, replacement in replacements.items():
            content = content.replace(self._wrap(anchor_id), replacement)
        return content

    def require_anchors(self, content: str, expected_ids: Sequence[str]) -> List[str]:
        """Return the anchor ids in ``content``; raise if any expected id is missing."""

        found = self._anchor_re.findall(content)
        present = set(found)
        missing = [anchor_id for anchor_id in expected_ids if anchor_id not in present]
        if missing:
            LOGGER.warning(
                "[content_processor] model output lost %d of %d anchors (text_size=%d)",
                len(missing),
                len(expected_ids),
                len(content),
            )
            raise ParsingError(
                f"Model output is missing {len(missing)} of {len(expected_ids)} expected anchors",
                text_size=len(content),
                anchors_found=len(found),
                context={"missing_anchors": missing},
            )
        return found

    # --- Helpers --------------------------------------------------------------
    def _wrap(self, anchor_id: str) -> str:
        return f"{self.config.prefix}{anchor_id}{self.config.suffix}"

    def _parse_section(self, anchor_id: str, body: str) -> Section:
        original = self._original_content(body)
        return Section(
            id=anchor_id,
            title=self._title(original),
            original_content=original,
            translations=[match.strip() for match in _TRANSLATION_RE.findall(body)],
            risks=self._risks(body),
            anchor=self._wrap(anchor_id),
        )

    @staticmethod
    def _original_content(body: str) -> str:
        match = _TRANSLATION_START_RE.search(body)
        return (body[: match.start()] if match else body).strip()

    @staticmethod
    def _title(original: str) -> str:
        for raw in original.splitlines():
            line = raw.strip()
            if not line:
                continue
            heading: Optional[re.Match[str]] = _HEADING_RE.match(line) or _NUMBERED_RE.match(line)
            return heading.group(1).strip() if heading else line
        return UNTITLED

    @staticmethod
    def _risks(body: str) -> List[Risk]:
        found: List[Tuple[int, Risk]] = []
        for risk_type, pattern in _RISK_RES.items():
            for match in pattern.finditer(body):
                found.append((match.start(), Risk(type=risk_type, text=match.group(1).strip())))
        found.sort(key=lambda item: item[0])
        return [risk for _, risk in found]


__all__ = ["ContentProcessor", "RISK_LABELS", "TRANSLATION_LABELS"]
