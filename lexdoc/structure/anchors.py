"""Generation and manipulation of section anchor markers.

An anchor is the literal ``<!-- SECTION_ANCHOR_{id} -->``. The same literal is
embedded in the prompt sent to the model and must come back untouched so the
response can be split into sections again. All text operations here are plain
substring operations; the id is validated instead of being escaped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Tuple

from .validators import InputValidator

if TYPE_CHECKING:  # pragma: no cover
    from lexdoc.config import Settings

LOGGER = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")
_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9_\s-]")
_SEPARATOR_RE = re.compile(r"[\s-]+")

FALLBACK_SLUG = "section"

TRANSLITERATION_MAP: Dict[str, str] = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "yo",
    "ж": "zh", "з": "z", "и": "i", "й": "y", "к": "k", "л": "l", "м": "m",
    "н": "n", "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u",
    "ф": "f", "х": "kh", "ц": "ts", "ч": "ch", "ш": "sh", "щ": "sch", "ъ": "",
    "ы": "y", "ь": "", "э": "e", "ю": "yu", "я": "ya",
    "А": "A", "Б": "B", "В": "V", "Г": "G", "Д": "D", "Е": "E", "Ё": "Yo",
    "Ж": "Zh", "З": "Z", "И": "I", "Й": "Y", "К": "K", "Л": "L", "М": "M",
    "Н": "N", "О": "O", "П": "P", "Р": "R", "С": "S", "Т": "T", "У": "U",
    "Ф": "F", "Х": "Kh", "Ц": "Ts", "Ч": "Ch", "Ш": "Sh", "Щ": "Sch", "Ъ": "",
    "Ы": "Y", "Ь": "", "Э": "E", "Ю": "Yu", "Я": "Ya",
}
_TRANSLITERATION_TABLE = str.maketrans(TRANSLITERATION_MAP)


@dataclass(slots=True)
class AnchorConfig:
    """Formatting options for anchor markers."""

    prefix: str = "<!-- SECTION_ANCHOR_"
    suffix: str = " -->"
    max_title_length: int = 50
    transliteration: bool = True
    normalize_case: bool = True

    @classmethod
    def from_settings(cls, settings: "Settings") -> "AnchorConfig":
        return cls(
            prefix=settings.anchor_prefix,
            suffix=settings.anchor_suffix,
            max_title_length=settings.anchor_max_title_length,
            transliteration=settings.anchor_transliteration,
            normalize_case=settings.anchor_normalize_case,
        )


class AnchorGenerator:
    """Create unique anchors for one document at a time.

    The generator remembers every anchor it produced since the last
    :meth:`reset_used_anchors` call; callers analysing several documents with
    one instance must reset it between documents.
    """

    def __init__(
        self,
        config: AnchorConfig | None = None,
        *,
        validator: InputValidator | None = None,
    ) -> None:
        self.config = config or AnchorConfig()
        self._validator = validator or InputValidator()
        self._used: List[str] = []
        self._used_set: set[str] = set()
        self._find_re = re.compile(
            re.escape(self.config.prefix) + r"([A-Za-z0-9_-]+)" + re.escape(self.config.suffix)
        )

    # --- Generation -----------------------------------------------------------
    def generate(self, section_id: str, title: str) -> str:
        """Return a new, session-unique anchor for ``section_id``."""

        self._validator.validate_anchor_id(section_id)
        if title.strip():
            self._validator.validate_title(title)

        base = f"{section_id}_{self.normalize_title(title)}"
        unique = self._ensure_unique(base)
        self._used.append(unique)
        self._used_set.add(unique)
        return self.wrap(unique)

    def generate_batch(self, sections: Iterable[Tuple[str, str]]) -> Dict[str, str]:
        """Generate anchors for ``(section_id, title)`` pairs, keyed by id."""

        items = list(sections)
        self._validator.validate_batch(items)
        return {section_id: self.generate(section_id, title) for section_id, title in items}

    def normalize_title(self, title: str) -> str:
        """Turn ``title`` into the slug portion of an anchor id."""

        text = _TAG_RE.sub("", title)
        if len(text) > self.config.max_title_length:
            text = text[: self.config.max_title_length]
        if self.config.transliteration:
            text = text.translate(_TRANSLITERATION_TABLE)
        text = _DISALLOWED_RE.sub("", text)
        text = _SEPARATOR_RE.sub("_", text).strip("_")
        if self.config.normalize_case:
            text = text.lower()
        return text or FALLBACK_SLUG

    def wrap(self, anchor_id: str) -> str:
        return f"{self.config.prefix}{anchor_id}{self.config.suffix}"

    def _ensure_unique(self, base: str) -> str:
        candidate = base
        counter = 1
        while candidate in self._used_set:
            candidate = f"{base}_{counter}"
            counter += 1
        return candidate

    # --- Inspection -----------------------------------------------------------
    def extract_anchor_id(self, anchor: str) -> Optional[str]:
        """Return the id between prefix and suffix, or ``None``."""

        match = self._find_re.fullmatch(anchor)
        return match.group(1) if match else None

    def is_valid_anchor(self, anchor: str) -> bool:
        prefix, suffix = self.config.prefix, self.config.suffix
        return (
            len(anchor) >= len(prefix) + len(suffix)
            and anchor.startswith(prefix)
            and anchor.endswith(suffix)
        )

    def find_anchors_in_text(self, text: str) -> List[str]:
        """Return every anchor literal in ``text`` in document order."""

        self._validator.validate_text_for_search(text)
        return [match.group(0) for match in self._find_re.finditer(text)]

    def get_anchor_pattern(self) -> str:
        return self._find_re.pattern

    # --- Substitution ---------------------------------------------------------
    def replace_anchor(self, text: str, anchor_id: str, replacement: str) -> str:
        anchor = self._checked_anchor(text, anchor_id)
        return text.replace(anchor, replacement)

    def insert_after_anchor(self, text: str, anchor_id: str, insertion: str) -> str:
        anchor = self._checked_anchor(text, anchor_id)
        return text.replace(anchor, f"{anchor}\n{insertion}")

    def remove_anchor(self, text: str, anchor_id: str) -> str:
        anchor = self._checked_anchor(text, anchor_id)
        return text.replace(anchor, "")

    def _checked_anchor(self, text: str, anchor_id: str) -> str:
        self._validator.validate_anchor_id(anchor_id)
        self._validator.validate_text_for_search(text)
        return self.wrap(anchor_id)

    # --- Session --------------------------------------------------------------
    def reset_used_anchors(self) -> None:
        if self._used:
            LOGGER.debug("[anchors] reset after %d anchors", len(self._used))
        self._used.clear()
        self._used_set.clear()

    def get_used_anchors(self) -> List[str]:
        return list(self._used)


__all__ = ["AnchorConfig", "AnchorGenerator", "FALLBACK_SLUG", "TRANSLITERATION_MAP"]
