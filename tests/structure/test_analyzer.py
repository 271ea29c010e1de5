from __future__ import annotations

from typing import List, Sequence

from lexdoc.structure.analyzer import NO_SECTIONS_WARNING, AnalyzerConfig, StructureAnalyzer
from lexdoc.structure.anchors import AnchorGenerator
from lexdoc.structure.detector import SectionDetector
from lexdoc.structure.models import DocumentSection, ExtractedDocument, TextElement

BODY = "The supplier delivers the goods and the buyer pays the agreed price in full."


class StubDetector:
    """Detector stand-in returning preset sections."""

    def __init__(self, sections: Sequence[DocumentSection] | Exception = ()) -> None:
        self._sections = sections
        self.calls = 0

    def detect_sections(self, document: ExtractedDocument) -> List[DocumentSection]:
        self.calls += 1
        if isinstance(self._sections, Exception):
            raise self._sections
        return list(self._sections)


def _section(position: int, *, level: int = 1, confidence: float = 0.9) -> DocumentSection:
    return DocumentSection(
        id=f"s{position}",
        title=f"Section {position}",
        content=BODY,
        level=level,
        start_position=position,
        end_position=position,
        anchor=f"<!-- SECTION_ANCHOR_s{position} -->",
        confidence=confidence,
    )


def _document(count: int = 4) -> ExtractedDocument:
    return ExtractedDocument(
        path="supply.pdf",
        mime_type="application/pdf",
        elements=[TextElement(BODY, "paragraph") for _ in range(count)],
        total_pages=2,
    )


def _analyzer(detector: StubDetector, anchors: AnchorGenerator | None = None) -> StructureAnalyzer:
    return StructureAnalyzer(detector, anchors or AnchorGenerator())


def test_sections_below_confidence_threshold_are_dropped() -> None:
    analyzer = _analyzer(StubDetector([_section(0, confidence=0.8), _section(1, confidence=0.2)]))
    result = analyzer.analyze(_document())

    assert [section.id for section in result.sections] == ["s0"]
    assert result.average_confidence == 0.8
    assert result.metadata["raw_sections_detected"] == 2
    assert result.warnings == []
    assert result.is_successful()


def test_hierarchy_nests_deeper_sections() -> None:
    detector = StubDetector(
        [
            _section(0, level=1),
            _section(1, level=2),
            _section(2, level=2),
            _section(3, level=1),
        ]
    )
    result = _analyzer(detector).analyze(_document())

    assert [section.id for section in result.sections] == ["s0", "s3"]
    assert [child.id for child in result.sections[0].subsections] == ["s1", "s2"]
    assert result.sections_count() == 2
    assert [section.id for section in result.all_sections()] == ["s0", "s1", "s2", "s3"]
    assert result.find_section_by_id("s2") is result.sections[0].subsections[1]

    stats = result.statistics
    assert stats["total_sections"] == 4
    assert stats["sections_by_level"] == {1: 2, 2: 2}
    assert stats["max_depth"] == 2
    assert stats["average_section_length"] == len(BODY)
    assert stats["total_content_length"] == 4 * len(BODY)


def test_no_sections_produces_warning() -> None:
    result = _analyzer(StubDetector([])).analyze(_document())

    assert result.sections == []
    assert result.warnings == [NO_SECTIONS_WARNING]
    assert result.statistics["total_sections"] == 0
    assert not result.is_successful()


def test_low_confidence_warnings() -> None:
    mixed = _analyzer(StubDetector([_section(0, confidence=0.9), _section(1, confidence=0.5)]))
    assert mixed.analyze(_document()).warnings == ["1 sections have low confidence scores (< 0.7)"]

    weak = _analyzer(StubDetector([_section(0, confidence=0.5), _section(1, confidence=0.5)]))
    assert weak.analyze(_document()).warnings == [
        "2 sections have low confidence scores (< 0.7)",
        "Low average confidence score: 0.50",
    ]


def test_empty_document_fails_validation() -> None:
    detector = StubDetector([_section(0)])
    document = ExtractedDocument(path="empty.pdf", mime_type="application/pdf")
    result = _analyzer(detector).analyze(document)

    assert result.sections == []
    assert result.warnings == [
        "Document validation failed: Document must contain at least one element"
    ]
    assert detector.calls == 0


def test_suspicious_content_fails_validation() -> None:
    document = ExtractedDocument(
        path="evil.html",
        mime_type="text/html",
        elements=[TextElement("<script>alert(1)</script>", "paragraph")],
    )
    result = _analyzer(StubDetector([_section(0)])).analyze(document)
    assert result.warnings == ["Document validation failed: Document contains suspicious content"]
    assert result.metadata["validation_error"] == "Document contains suspicious content"


def test_detector_failure_is_reported_not_raised() -> None:
    result = _analyzer(StubDetector(RuntimeError("boom"))).analyze(_document())

    assert result.sections == []
    assert result.warnings == ["Analysis failed: boom"]
    assert result.metadata == {"error": "boom"}


def test_anchor_session_is_reset_between_documents() -> None:
    anchors = AnchorGenerator()
    analyzer = StructureAnalyzer(SectionDetector(anchors), anchors)
    document = ExtractedDocument(
        path="a.docx",
        mime_type="application/msword",
        elements=[TextElement("Scope", "header"), TextElement(BODY + " " + BODY, "paragraph")],
    )

    first = analyzer.analyze(document)
    second = analyzer.analyze(document)

    assert first.sections[0].anchor.rsplit("_", 1)[-1] == "scope -->"
    assert second.sections[0].anchor.endswith("_scope -->")
    assert len(anchors.get_used_anchors()) == 1


def test_analyze_batch_isolates_documents() -> None:
    analyzer = _analyzer(StubDetector([_section(0)]))
    results = analyzer.analyze_batch(
        {
            "good": _document(),
            "empty": ExtractedDocument(path="empty.pdf", mime_type="application/pdf"),
        }
    )

    assert results["good"].sections_count() == 1
    assert results["empty"].sections == []
    assert results["empty"].warnings[0].startswith("Document validation failed")


def test_can_analyze_requires_enough_text() -> None:
    analyzer = _analyzer(StubDetector())
    assert analyzer.can_analyze(_document(count=2))
    assert not analyzer.can_analyze(_document(count=1))
    assert not analyzer.can_analyze(ExtractedDocument(path="x", mime_type="text/plain"))


def test_config_thresholds_are_respected() -> None:
    analyzer = StructureAnalyzer(
        StubDetector([_section(0, confidence=0.25)]),
        AnchorGenerator(),
        AnalyzerConfig(min_confidence_threshold=0.2, low_average_confidence=0.1),
    )
    result = analyzer.analyze(_document())
    assert result.sections_count() == 1
    assert result.warnings == ["1 sections have low confidence scores (< 0.7)"]


def test_importing_analyzer_installs_no_handlers() -> None:
    from lexdoc.structure import analyzer as analyzer_module

    assert analyzer_module.LOGGER.name == "lexdoc.structure.analyzer"
    assert analyzer_module.LOGGER.handlers == []
    assert not hasattr(analyzer_module, "configure_logging")
