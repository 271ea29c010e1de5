"""Shared counter and record stores used by the rate limiter and usage metrics.

Rate-limit counters must be shared by every worker that talks to the same
provider, so increments are single atomic operations with a time-to-live.
``SQLCounterStore`` provides that on top of the application database;
``MemoryCounterStore`` offers the same contract inside one process.
"""

from __future__ import annotations

import json
import threading
import time
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Dict, Optional, Protocol, Tuple

from sqlalchemy import and_, case, delete, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from lexdoc.database import get_engine, init_db
from lexdoc.models import KeyValueRecord, RateCounter

Clock = Callable[[], float]


class CounterStore(Protocol):
    """Atomic integer counters plus JSON records, both with optional expiry."""

    def increment(self, key: str, amount: int = 1, ttl_s: Optional[float] = None) -> int:
        """Add ``amount`` (may be negative) and return the new value, floored at zero."""

    def get_int(self, key: str) -> int:
        ...

    def delete(self, key: str) -> None:
        ...

    def get_json(self, key: str) -> Any:
        ...

    def set_json(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        ...

    def update_json(
        self, key: str, updater: Callable[[Any], Any], ttl_s: Optional[float] = None
    ) -> Any:
        """Apply ``updater`` to the current record and persist its return value."""


class MemoryCounterStore:
    """Process-local store guarded by a lock."""

    def __init__(self, *, clock: Clock = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._counters: Dict[str, Tuple[int, Optional[float]]] = {}
        self._records: Dict[str, Tuple[Any, Optional[float]]] = {}

    def _alive(self, expires_at: Optional[float]) -> bool:
        return expires_at is None or expires_at > self._clock()

    def _expiry(self, ttl_s: Optional[float]) -> Optional[float]:
        return None if ttl_s is None else self._clock() + ttl_s

    def increment(self, key: str, amount: int = 1, ttl_s: Optional[float] = None) -> int:
        with self._lock:
            current = self._counters.get(key)
            if current is None or not self._alive(current[1]):
                value, expires_at = 0, self._expiry(ttl_s)
            else:
                value, expires_at = current
            value = max(0, value + amount)
            self._counters[key] = (value, expires_at)
            return value

    def get_int(self, key: str) -> int:
        with self._lock:
            current = self._counters.get(key)
            if current is None or not self._alive(current[1]):
                return 0
            return current[0]

    def delete(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)
            self._records.pop(key, None)

    def get_json(self, key: str) -> Any:
        with self._lock:
            return self._read_record(key)

    def set_json(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        with self._lock:
            self._records[key] = (json.loads(json.dumps(value)), self._expiry(ttl_s))

    def update_json(
        self, key: str, updater: Callable[[Any], Any], ttl_s: Optional[float] = None
    ) -> Any:
        with self._lock:
            updated = updater(self._read_record(key))
            self._records[key] = (json.loads(json.dumps(updated)), self._expiry(ttl_s))
            return updated

    def _read_record(self, key: str) -> Any:
        record = self._records.get(key)
        if record is None or not self._alive(record[1]):
            return None
        return json.loads(json.dumps(record[0]))


class SQLCounterStore:
    """Counters and records persisted through SQLAlchemy.

    Each increment runs in its own transaction as one upsert, so concurrent
    workers sharing the database never lose an update. Rows carry an
    ``expires_at``; expired rows read as absent and are replaced on write.
    """

    def __init__(self, engine: Engine | None = None, *, clock: Clock = time.time) -> None:
        self._engine = engine or get_engine()
        self._clock = clock
        init_db(self._engine)

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), UTC).replace(tzinfo=None)

    def _expiry(self, now: datetime, ttl_s: Optional[float]) -> Optional[datetime]:
        return None if ttl_s is None else now + timedelta(seconds=ttl_s)

    @staticmethod
    def _live(column: Any, now: datetime) -> Any:
        return or_(column.is_(None), column > now)

    # --- Counters -------------------------------------------------------------
    def increment(self, key: str, amount: int = 1, ttl_s: Optional[float] = None) -> int:
        now = self._now()
        table = RateCounter.__table__
        with self._engine.begin() as connection:
            connection.execute(
                delete(table).where(
                    and_(table.c.key == key, table.c.expires_at.is_not(None), table.c.expires_at <= now)
                )
            )
            self._upsert_counter(connection, key, amount, self._expiry(now, ttl_s), now)
            value = connection.execute(select(table.c.value).where(table.c.key == key)).scalar_one()
        return int(value)

    def _upsert_counter(
        self,
        connection: Connection,
        key: str,
        amount: int,
        expires_at: Optional[datetime],
        now: datetime,
    ) -> None:
        table = RateCounter.__table__
        incremented = case((table.c.value + amount < 0, 0), else_=table.c.value + amount)
        values = {"key": key, "value": max(0, amount), "expires_at": expires_at, "updated_at": now}
        dialect = connection.dialect.name
        if dialect in {"sqlite", "postgresql"}:
            insert_factory = sqlite.insert if dialect == "sqlite" else postgresql.insert
            statement = insert_factory(table).values(**values)
            statement = statement.on_conflict_do_update(
                index_elements=[table.c.key],
                set_={"value": incremented, "updated_at": now},
            )
            connection.execute(statement)
            return

        result = connection.execute(
            table.update().where(table.c.key == key).values(value=incremented, updated_at=now)
        )
        if result.rowcount:
            return
        try:
            with connection.begin_nested():
                connection.execute(table.insert().values(**values))
        except IntegrityError:
            connection.execute(
                table.update().where(table.c.key == key).values(value=incremented, updated_at=now)
            )

    def get_int(self, key: str) -> int:
        table = RateCounter.__table__
        with self._engine.connect() as connection:
            value = connection.execute(
                select(table.c.value).where(
                    and_(table.c.key == key, self._live(table.c.expires_at, self._now()))
                )
            ).scalar_one_or_none()
        return int(value or 0)

    def delete(self, key: str) -> None:
        with self._engine.begin() as connection:
            connection.execute(delete(RateCounter.__table__).where(RateCounter.__table__.c.key == key))
            connection.execute(
                delete(KeyValueRecord.__table__).where(KeyValueRecord.__table__.c.key == key)
            )

    # --- Records --------------------------------------------------------------
    def get_json(self, key: str) -> Any:
        with self._engine.connect() as connection:
            return self._read_record(connection, key)

    def set_json(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        with self._engine.begin() as connection:
            self._write_record(connection, key, value, ttl_s)

    def update_json(
        self, key: str, updater: Callable[[Any], Any], ttl_s: Optional[float] = None
    ) -> Any:
        with self._engine.begin() as connection:
            updated = updater(self._read_record(connection, key))
            self._write_record(connection, key, updated, ttl_s)
        return updated

    def _read_record(self, connection: Connection, key: str) -> Any:
        table = KeyValueRecord.__table__
        raw = connection.execute(
            select(table.c.value_json).where(
                and_(table.c.key == key, self._live(table.c.expires_at, self._now()))
            )
        ).scalar_one_or_none()
        return None if raw is None else json.loads(raw)

    def _write_record(self, connection: Connection, key: str, value: Any, ttl_s: Optional[float]) -> None:
        table = KeyValueRecord.__table__
        now = self._now()
        payload = json.dumps(value, ensure_ascii=False)
        connection.execute(delete(table).where(table.c.key == key))
        connection.execute(
            table.insert().values(
                key=key,
                value_json=payload,
                expires_at=self._expiry(now, ttl_s),
                updated_at=now,
            )
        )


__all__ = ["CounterStore", "MemoryCounterStore", "SQLCounterStore"]
