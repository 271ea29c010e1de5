"""Provider adapters."""

from .base import LLMAdapter
from .claude import ClaudeAdapter, ClaudeConfig
from .fake import FakeAdapter

__all__ = ["ClaudeAdapter", "ClaudeConfig", "FakeAdapter", "LLMAdapter"]
