"""Post reconciliation — decide create, update, or no-op for a re-fetched item.

The stored post's status drives the decision:

* absent      create as ``unread``
* ignored     never touched again by ingestion
* unread      overwritten with the latest upstream data
* read, responded
              overwritten only when there is a signal worth surfacing (see
              ``should_update``); the user's status is kept

``(source, external_id)`` is the only identity. A create that loses a race
against a concurrent run comes back as ``UniquenessConflict``; the row is
then re-read and the existing-row policy applied, so callers never see it.
Updates are conditional on the status that was read; a user changing the
status in between (say to ``ignored``) sends the decision round again.

Items with no upstream date keep the ``posted_at`` they were created with.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable

from devdash.ingestion.errors import UniquenessConflict
from devdash.ingestion.models import Post, PostAttributes, PostStatus, utcnow
from devdash.storage.posts import PostStore

logger = logging.getLogger(__name__)

SCORE_DELTA_THRESHOLD = 2.0
STALE_AFTER = timedelta(hours=24)
_MAX_STATUS_RACES = 3


@dataclass(frozen=True)
class ReconcileResult:
    created: bool
    updated: bool
    post: Post


def should_update(post: Post, candidate: PostAttributes, now: datetime) -> bool:
    """True when a read/responded post has new activity worth refreshing."""
    if candidate.posted_at is not None and candidate.posted_at != post.posted_at:
        return True
    if candidate.priority_score > post.priority_score + SCORE_DELTA_THRESHOLD:
        return True
    if candidate.summary != post.summary:
        return True
    # Refreshes a quiet post once a day even without new signal
    return post.updated_at < now - STALE_AFTER


class PostReconciler:
    """Applies the status-aware upsert policy against a PostStore."""

    def __init__(self, store: PostStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def reconcile(
        self, source_name: str, external_id: str, candidate: PostAttributes,
    ) -> ReconcileResult:
        existing = self._store.find_by_source_and_external_id(source_name, external_id)
        if existing is None:
            try:
                post = self._store.create(source_name, external_id, candidate, PostStatus.UNREAD)
            except UniquenessConflict:
                logger.info(
                    "Post %s/%s created concurrently, applying update policy",
                    source_name, external_id,
                )
                existing = self._store.find_by_source_and_external_id(source_name, external_id)
                if existing is None:
                    raise
            else:
                return ReconcileResult(created=True, updated=False, post=post)

        return self._apply_existing(existing, candidate)

    def _apply_existing(self, post: Post, candidate: PostAttributes) -> ReconcileResult:
        for _ in range(_MAX_STATUS_RACES):
            if post.status is PostStatus.IGNORED:
                return ReconcileResult(created=False, updated=False, post=post)

            if candidate.posted_at_estimated:
                candidate = replace(candidate, posted_at=post.posted_at)

            if post.status is not PostStatus.UNREAD and not should_update(
                post, candidate, self._clock(),
            ):
                return ReconcileResult(created=False, updated=False, post=post)

            updated = self._store.update(post, candidate)
            if updated is not None:
                return ReconcileResult(created=False, updated=True, post=updated)

            # Status changed between read and write; decide again on the new row
            logger.info(
                "Post %s/%s changed status during reconcile, re-reading",
                post.source, post.external_id,
            )
            current = self._store.find_by_source_and_external_id(post.source, post.external_id)
            if current is None:
                raise LookupError(f"post {post.source}/{post.external_id} disappeared")
            post = current

        logger.warning(
            "Post %s/%s kept changing status, leaving it as stored",
            post.source, post.external_id,
        )
        return ReconcileResult(created=False, updated=False, post=post)
