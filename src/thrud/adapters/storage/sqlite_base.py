"""Base class and shared schema for SQLite storage adapters."""

import asyncio
import json
import os
import sqlite3
import threading
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

import aiosqlite

# Samples, collection rounds and charts live in one database file so a
# round's samples and its round record can be committed in one transaction.
SCHEMA = """
CREATE TABLE IF NOT EXISTS collection_rounds (
    id TEXT PRIMARY KEY,
    timestamp TEXT NOT NULL,
    sample_count INTEGER NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_rounds_timestamp ON collection_rounds(timestamp);

CREATE TABLE IF NOT EXISTS samples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    round_id TEXT REFERENCES collection_rounds(id),
    name TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    value_type TEXT NOT NULL
        CHECK (value_type IN ('integer', 'float', 'string', 'boolean')),
    value_int INTEGER,
    value_float REAL,
    value_text TEXT,
    value_bool INTEGER,
    metadata TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_samples_round ON samples(round_id);
CREATE INDEX IF NOT EXISTS idx_samples_name_timestamp ON samples(name, timestamp);
CREATE INDEX IF NOT EXISTS idx_samples_timestamp ON samples(timestamp);

CREATE TABLE IF NOT EXISTS charts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    round_id TEXT NOT NULL,
    metric_name TEXT NOT NULL,
    chart_type TEXT NOT NULL CHECK (chart_type IN ('bar', 'braille')),
    chart_data TEXT NOT NULL,
    data_points INTEGER NOT NULL,
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_charts_round ON charts(round_id);
CREATE INDEX IF NOT EXISTS idx_charts_metric_type ON charts(metric_name, chart_type);
"""


def _safe_json_loads(
    data: str, default: dict[str, Any] | None = None
) -> dict[str, Any]:
    """Safely parse JSON data, returning default on decode error.

    Args:
        data: JSON string to parse.
        default: Value to return if parsing fails. Defaults to empty dict.

    Returns:
        Parsed JSON as dict, or default if parsing fails.
    """
    if default is None:
        default = {}
    try:
        result = json.loads(data)
    except json.JSONDecodeError:
        return default
    return result if isinstance(result, dict) else default


def _placeholders(count: int) -> str:
    """Return a comma separated list of `count` parameter markers."""
    return ",".join("?" * count)


class AsyncConnectionManager:
    """Manages async (aiosqlite) database connections.

    Handles schema initialization and connection lifecycle for async contexts.
    For :memory: databases, maintains a persistent connection since SQLite
    in-memory databases are connection-scoped.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    def _get_lock(self) -> asyncio.Lock:
        """Get or create the initialization lock (lazy to avoid event loop issues)."""
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    @property
    def _should_close_connection(self) -> bool:
        """Return True if connections should be closed after use."""
        return self._db_path != ":memory:"

    async def _ensure_initialized(self) -> None:
        """Initialize database schema once."""
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self._db_path == ":memory:":
                self._persistent_conn = await aiosqlite.connect(":memory:")
                await self._persistent_conn.executescript(self._schema)
            else:
                async with aiosqlite.connect(self._db_path) as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(self._schema)
            self._initialized = True

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get a database connection."""
        await self._ensure_initialized()
        if self._db_path == ":memory:":
            if self._persistent_conn is None:
                raise RuntimeError("Memory database connection not initialized")
            return self._persistent_conn
        return await aiosqlite.connect(self._db_path)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for async database connections.

        Automatically closes connections for file-based databases.
        For :memory: databases, keeps connections open (they're persistent).
        """
        db = await self._get_connection()
        try:
            yield db
        finally:
            if self._should_close_connection:
                await db.close()

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False


class SyncConnectionManager:
    """Manages sync (sqlite3) database connections.

    Handles schema initialization and connection lifecycle for sync contexts.
    For :memory: databases, maintains a persistent connection since SQLite
    in-memory databases are connection-scoped.

    IMPORTANT: For :memory: databases, this manager maintains a completely
    separate database instance from AsyncConnectionManager.
    """

    def __init__(self, db_path: str, schema: str) -> None:
        self._db_path = db_path
        self._schema = schema
        self._initialized = False
        self._lock = threading.Lock()
        self._persistent_conn: sqlite3.Connection | None = None

    @property
    def _should_close_connection(self) -> bool:
        """Return True if connections should be closed after use."""
        return self._db_path != ":memory:"

    def _ensure_initialized(self) -> None:
        """Initialize database schema synchronously."""
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            if self._db_path == ":memory:":
                self._persistent_conn = sqlite3.connect(
                    ":memory:", check_same_thread=False
                )
                self._persistent_conn.executescript(self._schema)
            else:
                with sqlite3.connect(self._db_path) as db:
                    db.execute("PRAGMA journal_mode=WAL")
                    db.executescript(self._schema)
            self._initialized = True

    def _get_connection(self) -> sqlite3.Connection:
        """Get a sync database connection."""
        self._ensure_initialized()
        if self._db_path == ":memory:":
            if self._persistent_conn is None:
                raise RuntimeError("Sync memory database connection not initialized")
            return self._persistent_conn
        return sqlite3.connect(self._db_path)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for sync database connections.

        Automatically closes connections for file-based databases.
        For :memory: databases, keeps connections open (they're persistent).
        """
        conn = self._get_connection()
        try:
            yield conn
        finally:
            if self._should_close_connection:
                conn.close()


class SQLiteStorageBase:
    """Base class for SQLite storage adapters.

    Delegates connection lifecycle to AsyncConnectionManager and
    SyncConnectionManager. Subclasses implement domain-specific read/write
    methods against the shared SCHEMA.

    IMPORTANT - :memory: Database Isolation:
    When using :memory: databases, the sync (sqlite3) and async (aiosqlite)
    connections are COMPLETELY SEPARATE and do NOT share data, and two
    storage instances never share an in-memory database. Use a file path
    when sample and chart storage must see the same data.
    """

    def __init__(self, db_path: str, schema: str = SCHEMA) -> None:
        self._db_path = db_path
        self._schema = schema
        self._async_manager = AsyncConnectionManager(db_path, schema)
        self._sync_manager = SyncConnectionManager(db_path, schema)

    @property
    def db_path(self) -> str:
        return self._db_path

    async def close(self) -> None:
        """Close persistent connection (for :memory: databases)."""
        await self._async_manager.close()

    def database_size(self) -> int | None:
        """Size of the database file in bytes, None for :memory: databases."""
        if self._db_path == ":memory:":
            return None
        try:
            return os.path.getsize(self._db_path)
        except OSError:
            return None

    # --- Connection context managers (delegate to managers) ---

    @asynccontextmanager
    async def async_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for async database connections."""
        async with self._async_manager.connection() as conn:
            yield conn

    @contextmanager
    def sync_connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for sync database connections."""
        with self._sync_manager.connection() as conn:
            yield conn

    @asynccontextmanager
    async def async_transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run statements in one transaction: commit on success, else roll back."""
        async with self.async_connection() as db:
            try:
                yield db
            except Exception:
                await db.rollback()
                raise
            await db.commit()

    @contextmanager
    def sync_transaction(self) -> Iterator[sqlite3.Connection]:
        """Synchronous counterpart of async_transaction()."""
        with self.sync_connection() as conn:
            try:
                yield conn
            except Exception:
                conn.rollback()
                raise
            conn.commit()
