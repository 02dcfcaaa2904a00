"""Data access layer using repository pattern.

Each repository owns one collection. Records live in memory and are the
source of truth for the running process; every mutation is followed by
``flush()``, which rewrites the whole table. A failed flush is logged and
the in-memory state stays authoritative.
"""

import asyncio
from typing import Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

import aiosqlite
import structlog

from .database import DatabaseManager
from .models import ActionModel, EventModel, ListenerModel

logger = structlog.get_logger()

RecordT = TypeVar("RecordT", EventModel, ListenerModel, ActionModel)


class _CollectionRepository(Generic[RecordT]):
    """In-memory record set written through to one SQLite table."""

    table: str = ""
    columns: Tuple[str, ...] = ()

    def __init__(self, db_manager: DatabaseManager):
        """Initialize repository."""
        self.db = db_manager
        self._records: Dict[str, RecordT] = {}
        self._flush_lock = asyncio.Lock()

    def _from_row(self, row: aiosqlite.Row) -> RecordT:
        raise NotImplementedError

    async def load(self) -> List[RecordT]:
        """Replace the in-memory set with the persisted rows."""
        async with self.db.get_connection() as conn:
            cursor = await conn.execute(f"SELECT * FROM {self.table}")
            rows = await cursor.fetchall()

        self._records.clear()
        for row in rows:
            try:
                record = self._from_row(row)
            except (KeyError, TypeError, ValueError) as e:
                logger.error(
                    "Skipping unreadable record", table=self.table, error=str(e)
                )
                continue
            self._records[record.key] = record

        logger.info("Loaded records", table=self.table, count=len(self._records))
        return list(self._records.values())

    async def flush(self) -> bool:
        """Rewrite the table from the in-memory set.

        Returns False when the write failed; the in-memory state is kept.
        """
        placeholders = ", ".join("?" for _ in self.columns)
        insert_sql = (
            f"INSERT INTO {self.table} ({', '.join(self.columns)}) "
            f"VALUES ({placeholders})"
        )

        async with self._flush_lock:
            rows = [record.to_row() for record in self._records.values()]
            try:
                async with self.db.get_connection() as conn:
                    try:
                        await conn.execute(f"DELETE FROM {self.table}")
                        if rows:
                            await conn.executemany(insert_sql, rows)
                        await conn.commit()
                    except Exception:
                        # Pooled connections must not keep the write lock.
                        await conn.rollback()
                        raise
            except Exception:
                logger.exception(
                    "Failed to persist collection", table=self.table, count=len(rows)
                )
                return False

        logger.debug("Persisted collection", table=self.table, count=len(rows))
        return True

    def get(self, key: str) -> Optional[RecordT]:
        return self._records.get(key)

    def put(self, record: RecordT) -> None:
        self._records[record.key] = record

    def discard(self, key: str) -> Optional[RecordT]:
        """Drop a record from memory; returns it, or None if absent."""
        return self._records.pop(key, None)

    def values(self) -> List[RecordT]:
        return list(self._records.values())

    def by_owner(self, owner_id: str) -> List[RecordT]:
        return [r for r in self._records.values() if r.owner_id == owner_id]

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __iter__(self) -> Iterator[RecordT]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)


class EventRepository(_CollectionRepository[EventModel]):
    """Event data access."""

    table = "events"
    columns = (
        "event_id",
        "description",
        "owner_id",
        "setup_done",
        "last_triggered_at",
        "last_payload",
    )

    def _from_row(self, row: aiosqlite.Row) -> EventModel:
        return EventModel.from_row(row)


class ListenerRepository(_CollectionRepository[ListenerModel]):
    """Listener data access."""

    table = "listeners"
    columns = (
        "id",
        "event_id",
        "owner_id",
        "description",
        "instruction",
        "template",
        "tool_names",
        "notify",
        "auto_stop_after_single_event",
        "auto_stop_after_delay_seconds",
        "created_at",
    )

    def _from_row(self, row: aiosqlite.Row) -> ListenerModel:
        return ListenerModel.from_row(row)

    def for_event(self, event_id: str) -> List[ListenerModel]:
        return [r for r in self._records.values() if r.event_id == event_id]


class ActionRepository(_CollectionRepository[ActionModel]):
    """Action data access."""

    table = "actions"
    columns = (
        "action_id",
        "description",
        "owner_id",
        "schedule_type",
        "schedule_seconds",
        "schedule_expression",
        "instruction",
        "template",
        "tool_names",
        "notify",
        "created_at",
    )

    def _from_row(self, row: aiosqlite.Row) -> ActionModel:
        return ActionModel.from_row(row)
