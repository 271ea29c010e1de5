"""Pattern table and keyword data driving legal section detection.

Patterns are evaluated top-to-bottom and the first match wins, so the more
specific entries (multi-level numbering) precede the generic ones.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

HIGH_CONFIDENCE = 0.9
MEDIUM_CONFIDENCE = 0.7
LOW_CONFIDENCE = 0.5

CONFIDENCE_LEVELS = {
    "high": HIGH_CONFIDENCE,
    "medium": MEDIUM_CONFIDENCE,
    "low": LOW_CONFIDENCE,
}

MAX_LEVEL = 6

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)*")
_WORD_RE = re.compile(r"\w+", re.UNICODE)


@dataclass(frozen=True, slots=True)
class SectionPattern:
    """A single entry of the ordered detection table."""

    name: str
    kind: str
    regex: re.Pattern[str]


@dataclass(frozen=True, slots=True)
class PatternMatch:
    """Outcome of matching an element against the pattern table."""

    pattern: SectionPattern
    prefix: str
    title: str
    level: int


def _compile(name: str, kind: str, expression: str, *, ignore_case: bool = True) -> SectionPattern:
    flags = re.UNICODE | re.MULTILINE | (re.IGNORECASE if ignore_case else 0)
    return SectionPattern(name=name, kind=kind, regex=re.compile(expression, flags))


_SUFFIX = r"\.?\s*\.?\s?)(.*?)$"

SECTION_PATTERNS: tuple[SectionPattern, ...] = (
    _compile("multi_level_number", "subsection", r"^(\d{1,3}(?:\.\d{1,3}){1,5}" + _SUFFIX),
    _compile("number", "numbered", r"^(\d{1,3}(?:\.\s*|\s+)\.?\s?)(.*?)$"),
    _compile("section", "section", r"^((?:Section|Раздел)\s+\d+(?:\.\d+)*" + _SUFFIX),
    _compile("chapter", "section", r"^((?:Chapter|Глава)\s+\d+(?:\.\d+)*" + _SUFFIX),
    _compile("article", "article", r"^((?:Article|Статья)\s+\d+(?:\.\d+)*" + _SUFFIX),
    _compile("paragraph_sign", "article", r"^(§\s*\d+(?:\.\d+)*" + _SUFFIX),
    _compile("introduction", "named", r"^((?:Introduction|Введение)\b" + _SUFFIX),
    _compile("conclusion", "named", r"^((?:Conclusion|Заключение)\b" + _SUFFIX),
    _compile("appendix", "named", r"^((?:Appendix|Annex|Приложение)\b" + _SUFFIX),
    _compile("definitions", "named", r"^((?:Definitions|Термины\s+и\s+определения)\b" + _SUFFIX),
    _compile("general_provisions", "named", r"^((?:General\s+provisions|Общие\s+положения)\b" + _SUFFIX),
    _compile(
        "rights_and_obligations",
        "named",
        r"^((?:Rights\s+and\s+obligations|Права\s+и\s+обязанности)\b" + _SUFFIX,
    ),
    _compile(
        "liability",
        "named",
        r"^((?:Liability\s+of\s+the\s+parties|Ответственность\s+сторон)\b" + _SUFFIX,
    ),
    _compile("final_provisions", "named", r"^((?:Final\s+provisions|Заключительные\s+положения)\b" + _SUFFIX),
)

# Stems are matched against word prefixes so inflected forms count once.
LEGAL_KEYWORDS: frozenset[str] = frozenset(
    {
        # contract terms
        "contract", "agreement", "party", "parties", "obligation", "liability",
        "right", "duties", "performance", "breach", "condition", "clause",
        "article", "subject", "price", "payment", "term", "procedure",
        "договор", "соглашени", "контракт", "сторон", "обязательств",
        "ответственност", "прав", "обязанност", "исполнени", "нарушени",
        "услови", "пункт", "стать", "предмет", "цен", "оплат", "срок", "порядок",
        # legal entities
        "customer", "contractor", "supplier", "tenant", "landlord", "lessee",
        "lessor", "buyer", "seller", "employer", "employee", "client", "company",
        "заказчик", "исполнител", "подрядчик", "поставщик", "арендатор",
        "арендодател", "покупател", "продав", "работодател", "работник",
        "клиент", "компани",
        # actions
        "deliver", "perform", "provide", "transfer", "receive", "accept",
        "sign", "notify", "approve", "terminate",
        "постав", "выполн", "оказ", "предостав", "переда", "получ", "приня",
        "подпис", "уведом", "согласова", "утверд", "расторг",
    }
)


def level_for_match(pattern: SectionPattern, prefix: str) -> int:
    """Return the nesting level implied by a matched prefix.

    Multi-part numbers (``2.3.1``) nest one level per separator; otherwise
    chapters and sections sit at level 1 and articles (including ``§``) at 2.
    """

    number = _NUMBER_RE.search(prefix)
    if number is not None:
        separators = number.group(0).count(".")
        if separators:
            return min(separators + 1, MAX_LEVEL)
    if pattern.kind == "article":
        return 2
    return 1


def match_section_pattern(
    text: str, patterns: Sequence[SectionPattern] = SECTION_PATTERNS
) -> Optional[PatternMatch]:
    """Return the first pattern matching ``text`` or ``None``."""

    candidate = text.strip()
    if not candidate:
        return None
    for pattern in patterns:
        match = pattern.regex.match(candidate)
        if match is None:
            continue
        prefix, title = match.group(1), match.group(2)
        return PatternMatch(
            pattern=pattern,
            prefix=prefix,
            title=title.strip(),
            level=level_for_match(pattern, prefix),
        )
    return None


def count_legal_keywords(text: str, keywords: Iterable[str] = LEGAL_KEYWORDS) -> int:
    """Return how many distinct keywords start at least one word of ``text``."""

    words = {word for word in _WORD_RE.findall(text.lower())}
    if not words:
        return 0
    return sum(1 for keyword in keywords if any(word.startswith(keyword) for word in words))


__all__ = [
    "CONFIDENCE_LEVELS",
    "HIGH_CONFIDENCE",
    "LEGAL_KEYWORDS",
    "LOW_CONFIDENCE",
    "MAX_LEVEL",
    "MEDIUM_CONFIDENCE",
    "PatternMatch",
    "SECTION_PATTERNS",
    "SectionPattern",
    "count_legal_keywords",
    "level_for_match",
    "match_section_pattern",
]
