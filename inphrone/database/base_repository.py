"""Base repository pattern for database operations."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Sequence

import aiosqlite

from inphrone.database.connection import get_db_pool


class BaseRepository:
    """Base repository with common database operations."""

    @staticmethod
    async def execute(query: str, params: Sequence[Any] = ()) -> int:
        """Execute a query and return the number of affected rows."""
        pool = get_db_pool()
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.rowcount

    @staticmethod
    async def insert(query: str, params: Sequence[Any] = ()) -> int:
        """Execute an INSERT and return the new row id."""
        pool = get_db_pool()
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    @staticmethod
    async def fetch_one(query: str, params: Sequence[Any] = ()) -> Optional[aiosqlite.Row]:
        """Fetch a single row."""
        pool = get_db_pool()
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return await cursor.fetchone()

    @staticmethod
    async def fetch_all(query: str, params: Sequence[Any] = ()) -> List[aiosqlite.Row]:
        """Fetch all rows."""
        pool = get_db_pool()
        async with pool.connection() as conn:
            cursor = await conn.execute(query, params)
            return [row async for row in cursor]

    @staticmethod
    async def fetch_value(query: str, params: Sequence[Any] = ()) -> Optional[Any]:
        """Fetch a single value from a single row."""
        row = await BaseRepository.fetch_one(query, params)
        return row[0] if row else None

    @staticmethod
    async def fetch_column(query: str, params: Sequence[Any] = ()) -> List[Any]:
        """Fetch first column from all rows."""
        rows = await BaseRepository.fetch_all(query, params)
        return [row[0] for row in rows]

    @staticmethod
    @asynccontextmanager
    async def write_transaction() -> AsyncIterator[aiosqlite.Connection]:
        """Hold SQLite's write lock for the duration of the block.

        ``BEGIN IMMEDIATE`` takes the reserved lock before the first read, so
        a read-check-update sequence inside the block cannot interleave with
        another writer. Competing writers wait up to the pool's busy timeout.
        Commits on success, rolls back on any exception.
        """
        pool = get_db_pool()
        async with pool.connection() as conn:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                await conn.rollback()
                raise
            else:
                await conn.commit()
