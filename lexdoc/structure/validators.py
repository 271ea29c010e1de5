"""Input validation for anchors, titles, and extracted documents."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .models import ExtractedDocument

MAX_ANCHOR_ID_LENGTH = 255
MAX_TITLE_LENGTH = 1000
MAX_TEXT_SEARCH_LENGTH = 1_000_000
MAX_ELEMENTS_COUNT = 10_000
MAX_BATCH_SIZE = 100
MAX_DOCUMENT_SIZE = 50 * 1024 * 1024
MAX_REGEX_INPUT_LENGTH = 10_000

_ANCHOR_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_TITLE_FORBIDDEN_RE = re.compile(r"[<>\x00-\x1f\x7f]")
_SUSPICIOUS_PATTERNS = (
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:text/html", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"<iframe", re.IGNORECASE),
    re.compile(r"<object", re.IGNORECASE),
    re.compile(r"<embed", re.IGNORECASE),
)


@dataclass
class ValidationError(Exception):
    """Raised when caller-supplied input fails validation."""

    reason: str
    message: str

    def __str__(self) -> str:
        return self.message


class InputValidator:
    """Size and character checks applied before anchors or documents are processed."""

    def validate_anchor_id(self, anchor_id: str) -> None:
        if not anchor_id or not anchor_id.strip():
            raise ValidationError("empty_anchor_id", "Anchor ID cannot be empty")
        if len(anchor_id) > MAX_ANCHOR_ID_LENGTH:
            raise ValidationError(
                "anchor_id_too_long",
                f"Anchor ID too long: {len(anchor_id)} characters (max: {MAX_ANCHOR_ID_LENGTH})",
            )
        if not _ANCHOR_ID_RE.match(anchor_id):
            raise ValidationError(
                "invalid_anchor_id",
                "Anchor ID contains invalid characters. Only letters, numbers, "
                "underscores and hyphens are allowed",
            )

    def validate_title(self, title: str) -> None:
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(
                "title_too_long",
                f"Title too long: {len(title)} characters (max: {MAX_TITLE_LENGTH})",
            )
        if _TITLE_FORBIDDEN_RE.search(title):
            raise ValidationError("invalid_title", "Title contains forbidden characters")

    def validate_text_for_search(self, text: str) -> None:
        if len(text) > MAX_TEXT_SEARCH_LENGTH:
            raise ValidationError(
                "text_too_long",
                f"Text too long for search: {len(text)} characters (max: {MAX_TEXT_SEARCH_LENGTH})",
            )

    def validate_batch(self, items: Sequence[object]) -> None:
        if len(items) > MAX_BATCH_SIZE:
            raise ValidationError(
                "batch_too_large",
                f"Batch too large: {len(items)} items (max: {MAX_BATCH_SIZE})",
            )

    def validate_elements_count(self, elements: Sequence[object]) -> None:
        if len(elements) > MAX_ELEMENTS_COUNT:
            raise ValidationError(
                "too_many_elements",
                f"Too many elements: {len(elements)} (max: {MAX_ELEMENTS_COUNT})",
            )

    def validate_document(self, document: "ExtractedDocument") -> None:
        """Check element count, aggregate size, and per-element content."""

        self.validate_elements_count(document.elements)
        total_size = 0
        for index, element in enumerate(document.elements):
            if not isinstance(element.content, str):
                raise ValidationError(
                    "invalid_element",
                    f"Element {index} content must be a string",
                )
            total_size += len(element.content.encode("utf-8"))
            if total_size > MAX_DOCUMENT_SIZE:
                raise ValidationError(
                    "document_too_large",
                    f"Document too large: exceeds {MAX_DOCUMENT_SIZE} bytes",
                )

    def contains_suspicious_content(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in _SUSPICIOUS_PATTERNS)

    def sanitize_for_log(self, values: Iterable[str], limit: int = 100) -> list[str]:
        """Trim values for safe inclusion in log messages."""

        cleaned: list[str] = []
        for value in values:
            value = _TITLE_FORBIDDEN_RE.sub("", value)
            cleaned.append(value if len(value) <= limit else value[:limit] + "...")
        return cleaned


__all__ = [
    "InputValidator",
    "MAX_ANCHOR_ID_LENGTH",
    "MAX_BATCH_SIZE",
    "MAX_DOCUMENT_SIZE",
    "MAX_ELEMENTS_COUNT",
    "MAX_REGEX_INPUT_LENGTH",
    "MAX_TEXT_SEARCH_LENGTH",
    "MAX_TITLE_LENGTH",
    "ValidationError",
]
