"""Database schema definition and initialization."""

from __future__ import annotations

import logging

from devdash.storage.connection import get_connection

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
-- Configured upstream feeds
CREATE TABLE IF NOT EXISTS sources (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    name                TEXT NOT NULL,
    source_type         TEXT NOT NULL CHECK (source_type IN (
                            'github', 'github_trending', 'reddit', 'rss', 'discourse'
                        )),
    url                 TEXT UNIQUE,
    config              TEXT,
    active              INTEGER NOT NULL DEFAULT 1,
    auto_fetch_enabled  INTEGER NOT NULL DEFAULT 1,
    last_fetched_at     TEXT,
    status              TEXT,
    created_at          TEXT NOT NULL,
    updated_at          TEXT NOT NULL
);

-- Normalized content items; source is the source name, not a foreign key
CREATE TABLE IF NOT EXISTS posts (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    source          TEXT NOT NULL,
    external_id     TEXT NOT NULL,
    title           TEXT NOT NULL,
    url             TEXT NOT NULL,
    author          TEXT NOT NULL,
    posted_at       TEXT NOT NULL,
    summary         TEXT,
    tags            TEXT NOT NULL DEFAULT '[]',   -- JSON array
    status          TEXT NOT NULL DEFAULT 'unread' CHECK (status IN (
                        'unread', 'read', 'ignored', 'responded'
                    )),
    priority_score  REAL NOT NULL DEFAULT 0.0,
    created_at      TEXT NOT NULL,
    updated_at      TEXT NOT NULL,
    UNIQUE (source, external_id)
);

-- Scheduled job log
CREATE TABLE IF NOT EXISTS pipeline_runs (
    id          TEXT PRIMARY KEY,
    run_type    TEXT NOT NULL CHECK (run_type IN ('refresh', 'cleanup')),
    started_at  TEXT NOT NULL,
    finished_at TEXT NOT NULL,
    status      TEXT NOT NULL CHECK (status IN ('success', 'error')),
    result      TEXT NOT NULL,   -- JSON
    error       TEXT
);

-- Indexes: posts
CREATE INDEX IF NOT EXISTS idx_posts_posted_at ON posts(posted_at);
CREATE INDEX IF NOT EXISTS idx_posts_priority_score ON posts(priority_score);
CREATE INDEX IF NOT EXISTS idx_posts_status ON posts(status);

-- Indexes: pipeline_runs
CREATE INDEX IF NOT EXISTS idx_pipeline_runs_started_at ON pipeline_runs(started_at);
CREATE INDEX IF NOT EXISTS idx_pipeline_runs_run_type ON pipeline_runs(run_type);
"""


def init_db(database_path: str) -> None:
    """Create all tables and indexes if they do not already exist."""
    with get_connection(database_path) as conn:
        conn.executescript(_SCHEMA_SQL)
    logger.info("Database initialized at %s", database_path)
