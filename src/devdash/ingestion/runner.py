"""Ingestion runner — drives one source through its adapter and the reconciler."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable

from devdash.ingestion.errors import ValidationError
from devdash.ingestion.http import HttpFetcher
from devdash.ingestion.models import Source, utcnow
from devdash.ingestion.reconcile import PostReconciler
from devdash.ingestion.registry import build_adapter
from devdash.ingestion.status import SourceStatus
from devdash.storage.posts import PostStore
from devdash.storage.sources import SourceRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    new_count: int = 0
    error: Exception | None = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


class IngestionRunner:
    """Runs sources one at a time or all together on a thread pool.

    Every outcome ends up in the source's status; nothing raises to the
    caller. A source already being ingested is skipped rather than run twice.
    """

    def __init__(
        self,
        post_store: PostStore,
        sources: SourceRepository,
        fetcher_factory: Callable[[], HttpFetcher] = HttpFetcher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sources = sources
        self._fetcher_factory = fetcher_factory
        self._clock = clock
        self._reconciler = PostReconciler(post_store, clock)
        self._locks: dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, source_id: int) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(source_id, threading.Lock())

    def run(self, source: Source) -> RunResult:
        lock = self._lock_for(source.id)
        if not lock.acquire(blocking=False):
            logger.info("Source %s is already refreshing, skipping", source.name)
            return RunResult(skipped=True)
        try:
            return self._run_locked(source)
        finally:
            lock.release()

    def _run_locked(self, source: Source) -> RunResult:
        logger.info("Refreshing source %s (%s)", source.name, source.source_type)
        try:
            self._sources.save_status(source.id, SourceStatus.refreshing())
            with self._fetcher_factory() as fetcher:
                adapter = build_adapter(source, fetcher, self._clock)
                items = adapter.fetch_items()
                new_count = 0
                for item in items:
                    if self._ingest_item(source, adapter, item):
                        new_count += 1
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.exception("Source %s failed: %s", source.name, message)
            self._sources.save_status(source.id, SourceStatus.error(message))
            return RunResult(error=exc)

        self._sources.save_status(
            source.id, SourceStatus.ok(new_count), fetched_at=self._clock(),
        )
        logger.info(
            "Source %s: %d items fetched, %d new", source.name, len(items), new_count,
        )
        return RunResult(new_count=new_count)

    def _ingest_item(self, source: Source, adapter, item) -> bool:
        """Score, map, and reconcile one item. Returns True if a post was created."""
        try:
            score = adapter.score(item)
            external_id, attrs = adapter.to_post_attributes(item)
            if not external_id:
                raise ValidationError("external id is empty")
            attrs = replace(attrs, priority_score=score)
            attrs.ensure_valid()
            result = self._reconciler.reconcile(source.name, external_id, attrs)
        except ValidationError as exc:
            logger.warning("Skipping item from %s: %s", source.name, exc)
            return False
        except Exception:
            logger.exception("Failed to ingest item from %s", source.name)
            return False
        return result.created

    def refresh_all(self, max_workers: int = 4) -> dict[int, RunResult]:
        """Run every active, auto-fetch source; one failure never stops the others."""
        sources = self._sources.list_auto_fetch()
        results: dict[int, RunResult] = {}
        if not sources:
            logger.info("No sources to refresh")
            return results

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="refresh") as pool:
            futures = {pool.submit(self.run, source): source for source in sources}
            for future, source in futures.items():
                try:
                    results[source.id] = future.result()
                except Exception as exc:
                    logger.exception("Refresh of %s crashed", source.name)
                    results[source.id] = RunResult(error=exc)

        total_new = sum(r.new_count for r in results.values())
        failed = sum(1 for r in results.values() if r.error is not None)
        logger.info(
            "Refresh complete: %d sources, %d new posts, %d failed",
            len(results), total_new, failed,
        )
        return results
