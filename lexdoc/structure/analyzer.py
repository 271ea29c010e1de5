"""Document structure analysis: detection, filtering, hierarchy, statistics."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Sequence

from .anchors import AnchorConfig, AnchorGenerator
from .detector import DetectorConfig, SectionDetector
from .models import DocumentSection, ExtractedDocument, StructureAnalysisResult
from .validators import InputValidator, ValidationError

if TYPE_CHECKING:  # pragma: no cover
    from lexdoc.config import Settings

LOGGER = logging.getLogger(__name__)

ANALYZER_VERSION = "1.0.0"
NO_SECTIONS_WARNING = "No sections detected in document"


@dataclass(slots=True)
class AnalyzerConfig:
    """Thresholds applied after detection."""

    min_confidence_threshold: float = 0.3
    low_confidence_cutoff: float = 0.7
    low_confidence_fraction: float = 0.0
    low_average_confidence: float = 0.6
    max_analysis_time_s: float = 120.0
    min_analyzable_length: int = 100

    @classmethod
    def from_settings(cls, settings: "Settings") -> "AnalyzerConfig":
        return cls(
            min_confidence_threshold=settings.structure_min_confidence,
            max_analysis_time_s=settings.structure_max_analysis_time_s,
        )


class StructureAnalyzer:
    """Turn an extracted document into an anchored section tree.

    ``analyze`` never raises: validation problems and detection failures are
    reported through the returned result's ``warnings`` and ``metadata``.
    """

    def __init__(
        self,
        detector: SectionDetector,
        anchor_generator: AnchorGenerator,
        config: AnalyzerConfig | None = None,
        *,
        validator: InputValidator | None = None,
    ) -> None:
        self.detector = detector
        self.anchor_generator = anchor_generator
        self.config = config or AnalyzerConfig()
        self._validator = validator or InputValidator()

    @classmethod
    def from_settings(cls, settings: "Settings") -> "StructureAnalyzer":
        anchors = AnchorGenerator(AnchorConfig.from_settings(settings))
        detector = SectionDetector(anchors, DetectorConfig.from_settings(settings))
        return cls(detector, anchors, AnalyzerConfig.from_settings(settings))

    def analyze(self, document: ExtractedDocument) -> StructureAnalysisResult:
        try:
            self._validate(document)
        except ValidationError as exc:
            LOGGER.error("[analyzer] validation failed path=%s: %s", document.path, exc.message)
            return StructureAnalysisResult(
                sections=[],
                metadata={"validation_error": exc.message},
                warnings=[f"Document validation failed: {exc.message}"],
            )

        started = time.perf_counter()
        LOGGER.info(
            "[analyzer] starting analysis path=%s elements=%d",
            document.path,
            len(document.elements),
        )
        try:
            self.anchor_generator.reset_used_anchors()
            detected = self.detector.detect_sections(document)
            retained = self._filter_by_confidence(detected)
            hierarchy = self._build_hierarchy(retained)
            LOGGER.debug(
                "[analyzer] retained titles=%s",
                self._validator.sanitize_for_log(section.title for section in retained),
            )
            statistics = self._statistics(hierarchy, document)
            elapsed = time.perf_counter() - started
            average = self._average_confidence(hierarchy)
            result = StructureAnalysisResult(
                sections=hierarchy,
                analysis_time=elapsed,
                average_confidence=average,
                statistics=statistics,
                metadata=self._metadata(document, detected),
                warnings=self._warnings(hierarchy, elapsed, average),
            )
        except Exception as exc:  # noqa: BLE001 - analysis must never abort the caller
            elapsed = time.perf_counter() - started
            LOGGER.exception("[analyzer] analysis failed path=%s", document.path)
            return StructureAnalysisResult(
                sections=[],
                analysis_time=elapsed,
                metadata={"error": str(exc)},
                warnings=[f"Analysis failed: {exc}"],
            )

        if elapsed > self.config.max_analysis_time_s:
            LOGGER.warning(
                "[analyzer] analysis took too long elapsed=%.2fs max=%.0fs",
                elapsed,
                self.config.max_analysis_time_s,
            )
        LOGGER.info(
            "[analyzer] analysis completed path=%s sections=%d avg_confidence=%.3f",
            document.path,
            result.sections_count(),
            result.average_confidence,
        )
        return result

    def analyze_batch(
        self, documents: Mapping[str, ExtractedDocument]
    ) -> Dict[str, StructureAnalysisResult]:
        """Analyse each document independently; one failure never affects another."""

        self._validator.validate_batch(list(documents))
        results: Dict[str, StructureAnalysisResult] = {}
        for key, document in documents.items():
            try:
                results[key] = self.analyze(document)
            except Exception as exc:  # noqa: BLE001
                LOGGER.error("[analyzer] batch item failed key=%s: %s", key, exc)
                results[key] = StructureAnalysisResult(
                    sections=[],
                    metadata={"batch_error": str(exc)},
                    warnings=[f"Batch processing failed: {exc}"],
                )
        return results

    def can_analyze(self, document: ExtractedDocument) -> bool:
        if not document.elements:
            return False
        if len(document.plain_text().strip()) < self.config.min_analyzable_length:
            return False
        errors = document.metadata.get("errors")
        if errors:
            LOGGER.warning(
                "[analyzer] document has extraction errors path=%s errors=%s",
                document.path,
                errors,
            )
        return True

    # --- Steps ----------------------------------------------------------------
    def _validate(self, document: ExtractedDocument) -> None:
        if not document.elements:
            raise ValidationError("empty_document", "Document must contain at least one element")
        self._validator.validate_document(document)
        raw = "\n".join(element.content for element in document.elements)
        if self._validator.contains_suspicious_content(raw):
            raise ValidationError("suspicious_content", "Document contains suspicious content")

    def _filter_by_confidence(self, sections: Sequence[DocumentSection]) -> List[DocumentSection]:
        threshold = self.config.min_confidence_threshold
        return [section for section in sections if section.confidence >= threshold]

    @staticmethod
    def _build_hierarchy(sections: Sequence[DocumentSection]) -> List[DocumentSection]:
        """Nest deeper sections under the closest preceding shallower one."""

        roots: List[DocumentSection] = []
        stack: List[DocumentSection] = []
        for section in sorted(sections, key=lambda item: item.start_position):
            while stack and stack[-1].level >= section.level:
                stack.pop()
            if stack:
                stack[-1].subsections.append(section)
            else:
                roots.append(section)
            stack.append(section)
        return roots

    @staticmethod
    def _flatten(sections: Sequence[DocumentSection]) -> List[DocumentSection]:
        flattened: List[DocumentSection] = []
        for section in sections:
            flattened.append(section)
            flattened.extend(section.iter_subsections())
        return flattened

    def _statistics(
        self, sections: Sequence[DocumentSection], document: ExtractedDocument
    ) -> Dict[str, Any]:
        flattened = self._flatten(sections)
        if not flattened:
            return {
                "total_sections": 0,
                "sections_by_level": {},
                "average_section_length": 0,
                "total_content_length": 0,
                "coverage_percentage": 0.0,
                "max_depth": 0,
            }

        by_level: Dict[int, int] = {}
        total_length = 0
        for section in flattened:
            by_level[section.level] = by_level.get(section.level, 0) + 1
            total_length += section.content_length()

        document_length = len(document.plain_text())
        coverage = (total_length / document_length) * 100 if document_length else 0.0
        return {
            "total_sections": len(flattened),
            "sections_by_level": dict(sorted(by_level.items())),
            "average_section_length": total_length // len(flattened),
            "total_content_length": total_length,
            "coverage_percentage": round(coverage, 2),
            "max_depth": max(by_level),
        }

    def _average_confidence(self, sections: Sequence[DocumentSection]) -> float:
        flattened = self._flatten(sections)
        if not flattened:
            return 0.0
        return round(sum(section.confidence for section in flattened) / len(flattened), 3)

    def _metadata(
        self, document: ExtractedDocument, detected: Sequence[DocumentSection]
    ) -> Dict[str, Any]:
        return {
            "mime_type": document.mime_type,
            "total_pages": document.total_pages,
            "total_elements": len(document.elements),
            "element_types": document.element_types(),
            "raw_sections_detected": len(detected),
            "analyzer_version": ANALYZER_VERSION,
            "analyzed_at": datetime.now(UTC).isoformat(),
        }

    def _warnings(
        self, sections: Sequence[DocumentSection], elapsed: float, average: float
    ) -> List[str]:
        warnings: List[str] = []
        if not sections:
            warnings.append(NO_SECTIONS_WARNING)
            return warnings

        flattened = self._flatten(sections)
        cutoff = self.config.low_confidence_cutoff
        low = [section for section in flattened if section.confidence < cutoff]
        if low and len(low) / len(flattened) > self.config.low_confidence_fraction:
            warnings.append(f"{len(low)} sections have low confidence scores (< {cutoff})")

        limit = self.config.max_analysis_time_s
        if elapsed > limit * 0.8:
            warnings.append(f"Analysis time ({elapsed:.2f}s) approaching limit ({limit:.0f}s)")

        if average < self.config.low_average_confidence:
            warnings.append(f"Low average confidence score: {average:.2f}")
        return warnings


__all__ = [
    "ANALYZER_VERSION",
    "AnalyzerConfig",
    "NO_SECTIONS_WARNING",
    "StructureAnalyzer",
]
