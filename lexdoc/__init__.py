"""LexDoc: legal document sectioning, anchored LLM translation, and reassembly."""

__version__ = "0.1.0"
