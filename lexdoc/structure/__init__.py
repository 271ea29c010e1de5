"""Section detection, anchoring, and structure analysis for legal documents."""

from .analyzer import AnalyzerConfig, StructureAnalyzer
from .anchors import AnchorConfig, AnchorGenerator
from .detector import DetectorConfig, SectionDetector
from .models import (
    DetectionMetadata,
    DocumentSection,
    ExtractedDocument,
    StructureAnalysisResult,
    TextElement,
)
from .validators import InputValidator, ValidationError

__all__ = [
    "AnalyzerConfig",
    "AnchorConfig",
    "AnchorGenerator",
    "DetectionMetadata",
    "DetectorConfig",
    "DocumentSection",
    "ExtractedDocument",
    "InputValidator",
    "SectionDetector",
    "StructureAnalysisResult",
    "StructureAnalyzer",
    "TextElement",
    "ValidationError",
]
