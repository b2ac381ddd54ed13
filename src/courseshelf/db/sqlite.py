import asyncio
import logging
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import aiosqlite

logger = logging.getLogger(__name__)


class Database:
    """Asynchronous SQLite database wrapper."""

    def __init__(self, db_path: Union[str, Path]):
        """
        Initialize the database.

        Args:
            db_path: Location of the SQLite file
        """
        self._db_path = Path(db_path)
        self._conn: Optional[aiosqlite.Connection] = None
        self._initialized = False
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._db_path

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Initialize the database connection and schema."""
        os.makedirs(self._db_path.parent, exist_ok=True)

        async with self._lock:
            if self._initialized:
                return

            logger.info(f"Initializing database at {self._db_path}")

            self._conn = await aiosqlite.connect(self._db_path)
            self._conn.row_factory = sqlite3.Row

            await self._conn.execute("PRAGMA foreign_keys = ON")
            await self._conn.execute("PRAGMA journal_mode = WAL")

            await self._create_tables()

            self._initialized = True
            logger.info("Database initialization complete")

    async def close(self) -> None:
        """Close the database connection."""
        async with self._lock:
            if self._conn:
                await self._conn.close()
                self._conn = None
                self._initialized = False
                logger.info("Database connection closed")

    async def _create_tables(self) -> None:
        """Create the database tables if they don't exist."""
        if not self._conn:
            raise RuntimeError("Database not initialized")

        # Videos table; filename is the per-owner import key
        await self._conn.execute("""
        CREATE TABLE IF NOT EXISTS videos (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id TEXT NOT NULL,
            filename TEXT NOT NULL,
            title TEXT NOT NULL,
            path TEXT NOT NULL,
            completed INTEGER NOT NULL DEFAULT 0,
            duration_seconds REAL,
            created_at TEXT NOT NULL,
            UNIQUE (owner_id, filename)
        )
        """)

        await self._conn.execute("""
        CREATE TABLE IF NOT EXISTS courses (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id TEXT NOT NULL,
            name TEXT NOT NULL,
            created_at TEXT NOT NULL,
            UNIQUE (owner_id, name)
        )
        """)

        await self._conn.execute("""
        CREATE TABLE IF NOT EXISTS course_items (
            course_id INTEGER NOT NULL,
            video_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            PRIMARY KEY (course_id, video_id),
            FOREIGN KEY (course_id) REFERENCES courses (id) ON DELETE CASCADE,
            FOREIGN KEY (video_id) REFERENCES videos (id) ON DELETE CASCADE
        )
        """)

        await self._conn.execute("CREATE INDEX IF NOT EXISTS idx_videos_owner_id ON videos (owner_id)")
        await self._conn.execute("CREATE INDEX IF NOT EXISTS idx_courses_owner_id ON courses (owner_id)")

        await self._conn.commit()

    async def execute(self, query: str, params: Union[Tuple, Dict[str, Any], None] = None) -> aiosqlite.Cursor:
        """Execute a SQL query and commit it."""
        if not self._conn:
            raise RuntimeError("Database not initialized")

        async with self._lock:
            cursor = await self._conn.execute(query, params or ())
            await self._conn.commit()
            return cursor

    async def executemany(self, query: str, params_seq: List[Union[Tuple, Dict[str, Any]]]) -> aiosqlite.Cursor:
        """Execute a SQL query with multiple parameter sets and commit it."""
        if not self._conn:
            raise RuntimeError("Database not initialized")

        async with self._lock:
            cursor = await self._conn.executemany(query, params_seq)
            await self._conn.commit()
            return cursor

    async def execute_and_fetchall(self, query: str, params: Union[Tuple, Dict[str, Any], None] = None) -> List[
        sqlite3.Row]:
        """Execute a SQL query and fetch all results."""
        if not self._conn:
            raise RuntimeError("Database not initialized")

        async with self._lock:
            cursor = await self._conn.execute(query, params or ())
            return await cursor.fetchall()

    async def execute_and_fetchone(self, query: str, params: Union[Tuple, Dict[str, Any], None] = None) -> Optional[
        sqlite3.Row]:
        """Execute a SQL query and fetch one result."""
        if not self._conn:
            raise RuntimeError("Database not initialized")

        async with self._lock:
            cursor = await self._conn.execute(query, params or ())
            return await cursor.fetchone()

    def transaction(self) -> "Transaction":
        """
        Context manager for a multi-statement transaction.

        Holds the lock for its whole body; use the connection it yields rather
        than the locking helpers above, which would deadlock.
        """
        if not self._conn:
            raise RuntimeError("Database not initialized")

        return Transaction(self)


class Transaction:
    def __init__(self, db: Database):
        self.db = db

    async def __aenter__(self) -> aiosqlite.Connection:
        await self.db._lock.acquire()
        return self.db._conn

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is not None:
                await self.db._conn.rollback()
            else:
                await self.db._conn.commit()
        finally:
            self.db._lock.release()
