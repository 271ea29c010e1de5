"""Tables holding shared rate-limit counters and usage-metric records."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Optional

from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return the current time in UTC."""

    return datetime.now(UTC)


class RateCounter(SQLModel, table=True):
    """Integer counter keyed by window, shared by every worker process."""

    __tablename__ = "rate_counter"

    key: str = Field(primary_key=True, max_length=255)
    value: int = Field(default=0, nullable=False)
    expires_at: Optional[datetime] = Field(default=None, index=True, nullable=True)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)


class KeyValueRecord(SQLModel, table=True):
    """JSON document keyed by name with an optional expiry."""

    __tablename__ = "kv_record"

    key: str = Field(primary_key=True, max_length=255)
    value_json: str = Field(nullable=False)
    expires_at: Optional[datetime] = Field(default=None, index=True, nullable=True)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)


__all__ = ["KeyValueRecord", "RateCounter"]
