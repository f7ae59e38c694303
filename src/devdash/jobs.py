"""Scheduled job functions — source refresh, retention cleanup, seeding."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone

from devdash.config import Config
from devdash.ingestion.http import HttpFetcher
from devdash.ingestion.runner import IngestionRunner, RunResult
from devdash.storage.connection import get_connection
from devdash.storage.posts import SQLitePostStore
from devdash.storage.sources import SourceRepository

logger = logging.getLogger(__name__)

_CLEANUP_BATCH_SIZE = 100

# One runner per database so its per-source locks cover scheduler and API runs
_runners: dict[str, IngestionRunner] = {}
_runners_lock = threading.Lock()


def _record_run(
    database_path: str,
    run_type: str,
    started_at: str,
    result: dict,
    error: str | None = None,
) -> None:
    """Insert a pipeline run record into the pipeline_runs table."""
    finished_at = datetime.now(timezone.utc).isoformat()
    status = "error" if error else "success"
    with get_connection(database_path) as conn:
        conn.execute(
            "INSERT INTO pipeline_runs "
            "(id, run_type, started_at, finished_at, status, result, error) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                str(uuid.uuid4()),
                run_type,
                started_at,
                finished_at,
                status,
                json.dumps(result),
                error,
            ),
        )


def get_runner(config: Config) -> IngestionRunner:
    """Return the process-wide runner for ``config.database_path``."""
    with _runners_lock:
        runner = _runners.get(config.database_path)
        if runner is None:
            runner = IngestionRunner(
                SQLitePostStore(config.database_path),
                SourceRepository(config.database_path),
                fetcher_factory=lambda: HttpFetcher(
                    timeout=config.http_timeout_seconds,
                    user_agent=config.http_user_agent,
                ),
            )
            _runners[config.database_path] = runner
        return runner


def seed_sources(config: Config) -> int:
    """Upsert the sources listed in the sources config file."""
    return SourceRepository(config.database_path).load_sources_file(config.sources_config_path)


def run_refresh_all(config: Config) -> None:
    """Refresh every active, auto-fetch source and log the sweep as a run."""
    started_at = datetime.now(timezone.utc).isoformat()
    error_msg = None
    run_result: dict = {}

    try:
        results = get_runner(config).refresh_all(max_workers=config.refresh_max_workers)
        run_result = {
            "sources": len(results),
            "posts_new": sum(r.new_count for r in results.values()),
            "sources_failed": sum(1 for r in results.values() if r.error is not None),
            "sources_skipped": sum(1 for r in results.values() if r.skipped),
        }
    except Exception:
        logger.exception("Refresh sweep failed")
        error_msg = "Refresh failed (see logs)"

    _record_run(config.database_path, "refresh", started_at, run_result, error=error_msg)


def run_refresh_source(config: Config, source_id: int) -> RunResult | None:
    """Refresh one source by id. Returns None when the source does not exist."""
    source = SourceRepository(config.database_path).get(source_id)
    if source is None:
        logger.warning("Refresh requested for unknown source %s", source_id)
        return None

    started_at = datetime.now(timezone.utc).isoformat()
    result = get_runner(config).run(source)
    _record_run(
        config.database_path, "refresh", started_at,
        {
            "source_id": source.id,
            "source": source.name,
            "posts_new": result.new_count,
            "skipped": result.skipped,
        },
        error=str(result.error) if result.error is not None else None,
    )
    return result


def run_cleanup(config: Config) -> None:
    """Delete posts whose posted_at is older than the retention window."""
    started_at = datetime.now(timezone.utc).isoformat()
    error_msg = None
    deleted = 0

    cutoff = datetime.now(timezone.utc) - timedelta(days=config.post_retention_days)
    try:
        logger.info(
            "Cleanup: deleting posts older than %d days (before %s)",
            config.post_retention_days, cutoff.isoformat(),
        )
        deleted = SQLitePostStore(config.database_path).delete_posted_before(
            cutoff, batch_size=_CLEANUP_BATCH_SIZE,
        )
        logger.info("Cleanup complete: %d posts deleted", deleted)
    except Exception:
        logger.exception("Cleanup failed")
        error_msg = "Cleanup failed (see logs)"

    _record_run(
        config.database_path, "cleanup", started_at,
        {"posts_deleted": deleted, "retention_days": config.post_retention_days},
        error=error_msg,
    )
