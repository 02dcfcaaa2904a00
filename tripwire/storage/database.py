"""Database connection and initialization.

Features:
- Connection pooling
- Automatic migrations
- Health checks
- Schema versioning
"""

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, List, Tuple

import aiosqlite
import structlog

from ..exceptions import DatabaseConnectionError

logger = structlog.get_logger()


# Python 3.12+: sqlite3's default datetime adapter is deprecated.
# Register explicit adapters/converters once at import time to avoid warnings
# and keep consistent ISO-8601 persistence for datetime values.
sqlite3.register_adapter(datetime, lambda value: value.isoformat())
sqlite3.register_converter("TIMESTAMP", lambda b: datetime.fromisoformat(b.decode()))

# Initial schema migration
INITIAL_SCHEMA = """
-- Events: named trigger channels declared by an owner
CREATE TABLE events (
    event_id TEXT PRIMARY KEY,
    description TEXT NOT NULL,
    owner_id TEXT NOT NULL,
    setup_done BOOLEAN DEFAULT FALSE,
    last_triggered_at TIMESTAMP,
    last_payload JSON
);

-- Listeners: reactions bound to one event
CREATE TABLE listeners (
    id TEXT PRIMARY KEY,
    event_id TEXT NOT NULL,
    owner_id TEXT NOT NULL,
    description TEXT NOT NULL,
    instruction TEXT,
    template TEXT,
    tool_names JSON,
    notify BOOLEAN DEFAULT TRUE,
    auto_stop_after_single_event BOOLEAN DEFAULT TRUE,
    auto_stop_after_delay_seconds INTEGER,
    created_at TIMESTAMP NOT NULL
);

-- Actions: one-shot delayed or recurring cron work
CREATE TABLE actions (
    action_id TEXT PRIMARY KEY,
    description TEXT NOT NULL,
    owner_id TEXT NOT NULL,
    schedule_type TEXT NOT NULL,
    schedule_seconds INTEGER,
    schedule_expression TEXT,
    instruction TEXT,
    template TEXT,
    tool_names JSON,
    notify BOOLEAN DEFAULT TRUE,
    created_at TIMESTAMP NOT NULL
);

CREATE INDEX idx_events_owner_id ON events(owner_id);
CREATE INDEX idx_listeners_owner_id ON listeners(owner_id);
CREATE INDEX idx_listeners_event_id ON listeners(event_id);
CREATE INDEX idx_actions_owner_id ON actions(owner_id);
"""


class DatabaseManager:
    """Manage database connections and initialization."""

    def __init__(self, database_url: str):
        """Initialize database manager."""
        self.database_path = self._parse_database_url(database_url)
        self._connection_pool: List[aiosqlite.Connection] = []
        self._pool_size = 3
        self._pool_lock = asyncio.Lock()

    def _parse_database_url(self, database_url: str) -> Path:
        """Parse database URL to path."""
        if database_url.startswith("sqlite:///"):
            return Path(database_url[10:])
        elif database_url.startswith("sqlite://"):
            return Path(database_url[9:])
        else:
            return Path(database_url)

    async def initialize(self) -> None:
        """Initialize database and run migrations."""
        logger.info("Initializing database", path=str(self.database_path))

        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            await self._run_migrations()
            await self._init_pool()
        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Cannot open database at {self.database_path}: {e}"
            ) from e

        logger.info("Database initialization complete")

    async def _run_migrations(self) -> None:
        """Run database migrations."""
        async with aiosqlite.connect(
            self.database_path, detect_types=sqlite3.PARSE_DECLTYPES
        ) as conn:
            conn.row_factory = aiosqlite.Row

            current_version = await self._get_schema_version(conn)
            logger.info("Current schema version", version=current_version)

            migrations = self._get_migrations()
            for version, migration in migrations:
                if version > current_version:
                    logger.info("Running migration", version=version)
                    await conn.executescript(migration)
                    await self._set_schema_version(conn, version)

            await conn.commit()

    async def _get_schema_version(self, conn: aiosqlite.Connection) -> int:
        """Get current schema version."""
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            )
        """
        )

        cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
        row = await cursor.fetchone()
        return row[0] if row and row[0] else 0

    async def _set_schema_version(
        self, conn: aiosqlite.Connection, version: int
    ) -> None:
        """Set schema version."""
        await conn.execute(
            "INSERT INTO schema_version (version) VALUES (?)", (version,)
        )

    def _get_migrations(self) -> List[Tuple[int, str]]:
        """Get migration scripts."""
        return [
            (1, INITIAL_SCHEMA),
            (
                2,
                """
                -- Enable WAL mode for better concurrent write performance
                PRAGMA journal_mode=WAL;
                """,
            ),
        ]

    async def _connect(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(
            self.database_path, detect_types=sqlite3.PARSE_DECLTYPES
        )
        conn.row_factory = aiosqlite.Row
        return conn

    async def _init_pool(self) -> None:
        """Initialize connection pool."""
        logger.info("Initializing connection pool", size=self._pool_size)

        async with self._pool_lock:
            for _ in range(self._pool_size):
                self._connection_pool.append(await self._connect())

    @asynccontextmanager
    async def get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Get database connection from pool."""
        async with self._pool_lock:
            if self._connection_pool:
                conn = self._connection_pool.pop()
            else:
                conn = await self._connect()

        try:
            yield conn
        finally:
            async with self._pool_lock:
                if len(self._connection_pool) < self._pool_size:
                    self._connection_pool.append(conn)
                else:
                    await conn.close()

    async def close(self) -> None:
        """Close all connections in pool."""
        logger.info("Closing database connections")

        async with self._pool_lock:
            for conn in self._connection_pool:
                await conn.close()
            self._connection_pool.clear()

    async def health_check(self) -> bool:
        """Check database health."""
        try:
            async with self.get_connection() as conn:
                await conn.execute("SELECT 1")
                return True
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False
