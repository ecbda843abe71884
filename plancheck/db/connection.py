"""Database connection factory.

Provides a singleton async SQLite connection (WAL mode) for the report
history store. Location comes from ``PLANCHECK_DB_PATH``.
"""
from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

from plancheck import config

logger = logging.getLogger("plancheck.db")

_connection: aiosqlite.Connection | None = None


async def get_connection(db_path: str | None = None) -> aiosqlite.Connection:
    """Return the singleton database connection, creating it if needed."""
    global _connection
    if _connection is not None:
        return _connection

    target = db_path or config.DB_PATH
    if target != ":memory:":
        Path(target).parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(target)
    conn.row_factory = aiosqlite.Row
    # Enable WAL mode for better concurrent read performance
    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.execute("PRAGMA busy_timeout=5000")
    logger.info("Database connection established: %s", target)
    _connection = conn
    return _connection


async def close_connection() -> None:
    """Close the database connection."""
    global _connection
    if _connection is not None:
        await _connection.close()
        _connection = None
        logger.info("Database connection closed")
