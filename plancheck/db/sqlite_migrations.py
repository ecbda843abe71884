"""Database schema creation and versioning for the report history store.

Uses IF NOT EXISTS for idempotent runs.
"""
from __future__ import annotations

import logging

import aiosqlite

logger = logging.getLogger("plancheck.db")

SCHEMA_VERSION = 1

_TABLES = """
-- ── Schema version tracking ────────────────────────────────────────
CREATE TABLE IF NOT EXISTS schema_version (
    version   INTEGER NOT NULL,
    applied   TEXT NOT NULL DEFAULT (datetime('now'))
);

-- ── Analysis runs (one aggregate report each) ──────────────────────
CREATE TABLE IF NOT EXISTS analysis_runs (
    id                  TEXT PRIMARY KEY,
    kind                TEXT NOT NULL,
    root                TEXT NOT NULL DEFAULT '',
    created_at          TEXT NOT NULL,
    total               INTEGER NOT NULL DEFAULT 0,
    progress_percent    INTEGER NOT NULL DEFAULT 0,
    average_confidence  INTEGER NOT NULL DEFAULT 0,
    summary_json        TEXT NOT NULL DEFAULT '{}',
    warnings_json       TEXT NOT NULL DEFAULT '[]'
);
CREATE INDEX IF NOT EXISTS idx_analysis_runs_kind ON analysis_runs(kind, created_at);

-- ── Per-candidate results of a run ─────────────────────────────────
CREATE TABLE IF NOT EXISTS run_results (
    run_id          TEXT NOT NULL REFERENCES analysis_runs(id) ON DELETE CASCADE,
    position        INTEGER NOT NULL,
    identity        TEXT NOT NULL,
    kind            TEXT NOT NULL,
    subject         TEXT NOT NULL DEFAULT '',
    status          TEXT NOT NULL,
    band            TEXT NOT NULL DEFAULT '',
    confidence      INTEGER NOT NULL DEFAULT 0,
    recommendation  TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (run_id, position)
);
CREATE INDEX IF NOT EXISTS idx_run_results_identity ON run_results(run_id, identity);
"""


async def run_migrations(db: aiosqlite.Connection) -> None:
    """Create all tables. Idempotent."""
    try:
        async with db.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
            current_version = row[0] if row and row[0] else 0
    except aiosqlite.OperationalError:
        current_version = 0

    if current_version >= SCHEMA_VERSION:
        logger.info("Schema is up to date (version %s)", current_version)
        return

    logger.info("Running migrations: %s -> %s", current_version, SCHEMA_VERSION)
    await db.executescript(_TABLES)
    await db.execute(
        "INSERT INTO schema_version (version) VALUES (?)",
        (SCHEMA_VERSION,),
    )
    await db.commit()
    logger.info("Migrations complete, schema version %s", SCHEMA_VERSION)
