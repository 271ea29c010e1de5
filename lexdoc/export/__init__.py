"""Reassembly of anchor-tagged model output for export."""

from .content_processor import ContentProcessor
from .models import ParsedContent, ProcessingRecord, Risk, Section

__all__ = ["ContentProcessor", "ParsedContent", "ProcessingRecord", "Risk", "Section"]
