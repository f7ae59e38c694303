"""Read-only query functions for the API."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from typing import Generator

from devdash.ingestion.status import SourceStatus

# ---------------------------------------------------------------------------
# Allowed sort orders for list_posts
# ---------------------------------------------------------------------------
_SORT_ORDERS = {
    "priority": "p.priority_score DESC, p.posted_at DESC",
    "recent": "p.posted_at DESC, p.id DESC",
}

# Posts stored under literal source names from before every post had a
# matching source row.
_LEGACY_SOURCE_TYPES = {
    "github": "github",
    "github_issues": "github",
    "github_trending": "github_trending",
    "huggingface": "discourse",
    "pytorch": "discourse",
    "reddit": "reddit",
    "rss": "rss",
    "hackernews": "rss",
}

_POST_COLUMNS = (
    "p.id, p.source, p.external_id, p.title, p.url, p.author, p.posted_at, "
    "p.summary, p.tags, p.status, p.priority_score, p.created_at, p.updated_at, "
    "(SELECT s.source_type FROM sources s WHERE s.name = p.source "
    " ORDER BY s.id LIMIT 1) AS live_source_type"
)


@contextmanager
def _readonly(database_path: str) -> Generator[sqlite3.Connection, None, None]:
    """Read-only connection, so listings never take the writer lock."""
    conn = sqlite3.connect(f"file:{database_path}?mode=ro", uri=True)
    conn.execute("PRAGMA query_only=ON")
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def legacy_source_type(source_name: str) -> str:
    """Guess a source type from a bare source name; ``unknown`` if no match."""
    return _LEGACY_SOURCE_TYPES.get(source_name.lower(), "unknown")


def _post_row(r: sqlite3.Row) -> dict:
    try:
        tags = json.loads(r["tags"] or "[]")
    except ValueError:
        tags = []
    return {
        "id": r["id"],
        "source": r["source"],
        "source_type": r["live_source_type"] or legacy_source_type(r["source"]),
        "external_id": r["external_id"],
        "title": r["title"],
        "url": r["url"],
        "author": r["author"],
        "posted_at": r["posted_at"],
        "summary": r["summary"] or "",
        "tags": tags if isinstance(tags, list) else [],
        "status": r["status"],
        "priority_score": r["priority_score"],
        "created_at": r["created_at"],
        "updated_at": r["updated_at"],
    }


# ---------------------------------------------------------------------------
# list_sources
# ---------------------------------------------------------------------------
def list_sources(database_path: str) -> list[dict]:
    """Return all sources with their status parsed into a kind."""
    with _readonly(database_path) as conn:
        rows = conn.execute("SELECT * FROM sources ORDER BY name, id").fetchall()

    return [
        {
            "id": r["id"],
            "name": r["name"],
            "source_type": r["source_type"],
            "url": r["url"],
            "active": bool(r["active"]),
            "auto_fetch_enabled": bool(r["auto_fetch_enabled"]),
            "last_fetched_at": r["last_fetched_at"],
            "status": r["status"],
            "status_kind": SourceStatus.parse(r["status"]).kind.value,
        }
        for r in rows
    ]


# ---------------------------------------------------------------------------
# list_posts
# ---------------------------------------------------------------------------
def list_posts(
    database_path: str,
    *,
    filters: dict | None = None,
    page: int = 1,
    per_page: int = 20,
    sort: str = "priority",
) -> tuple[list[dict], int]:
    """Return a paginated, filtered list of posts."""
    filters = filters or {}
    offset = (page - 1) * per_page
    order_by = _SORT_ORDERS.get(sort, _SORT_ORDERS["priority"])

    conditions: list[str] = []
    params: list[object] = []

    if "source" in filters:
        conditions.append("p.source = ?")
        params.append(filters["source"])

    if "status" in filters:
        conditions.append("p.status = ?")
        params.append(filters["status"])

    where_clause = ""
    if conditions:
        where_clause = "WHERE " + " AND ".join(conditions)

    with _readonly(database_path) as conn:
        total = conn.execute(
            f"SELECT COUNT(*) FROM posts p {where_clause}", params,
        ).fetchone()[0]

        # order_by comes from the whitelist above
        rows = conn.execute(
            f"SELECT {_POST_COLUMNS} FROM posts p {where_clause} "
            f"ORDER BY {order_by} LIMIT ? OFFSET ?",
            [*params, per_page, offset],
        ).fetchall()

    return [_post_row(r) for r in rows], total


# ---------------------------------------------------------------------------
# get_post
# ---------------------------------------------------------------------------
def get_post(database_path: str, post_id: int) -> dict | None:
    with _readonly(database_path) as conn:
        row = conn.execute(
            f"SELECT {_POST_COLUMNS} FROM posts p WHERE p.id = ?", (post_id,),
        ).fetchone()
    return _post_row(row) if row else None


# ---------------------------------------------------------------------------
# list_pipeline_runs
# ---------------------------------------------------------------------------
def list_pipeline_runs(
    database_path: str,
    *,
    run_type: str | None = None,
    page: int = 1,
    per_page: int = 50,
) -> tuple[list[dict], int]:
    """Return a paginated list of pipeline runs, newest first."""
    offset = (page - 1) * per_page
    where_clause = ""
    params: list[object] = []
    if run_type is not None:
        where_clause = "WHERE run_type = ?"
        params.append(run_type)

    with _readonly(database_path) as conn:
        total = conn.execute(
            f"SELECT COUNT(*) FROM pipeline_runs {where_clause}", params,
        ).fetchone()[0]
        rows = conn.execute(
            f"SELECT * FROM pipeline_runs {where_clause} "
            f"ORDER BY started_at DESC LIMIT ? OFFSET ?",
            [*params, per_page, offset],
        ).fetchall()

    runs = []
    for r in rows:
        runs.append({
            "id": r["id"],
            "run_type": r["run_type"],
            "started_at": r["started_at"],
            "finished_at": r["finished_at"],
            "status": r["status"],
            "result": json.loads(r["result"]),
            "error": r["error"],
        })

    return runs, total
