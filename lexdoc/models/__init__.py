"""SQLModel tables used by LexDoc."""

from .counters import KeyValueRecord, RateCounter

__all__ = ["KeyValueRecord", "RateCounter"]
