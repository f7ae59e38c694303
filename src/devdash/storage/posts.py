"""Post persistence — the store contract plus SQLite and in-memory backings."""

from __future__ import annotations

import json
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime
from typing import Callable, Protocol

from devdash.ingestion.errors import UniquenessConflict
from devdash.ingestion.models import Post, PostAttributes, PostStatus, utcnow
from devdash.storage.connection import from_db_time, get_connection, to_db_time

_DELETE_BATCH_SIZE = 100


class PostStore(Protocol):
    """Persistence contract used by the reconciler and the retention sweep."""

    def find_by_source_and_external_id(self, source: str, external_id: str) -> Post | None:
        ...

    def create(
        self, source: str, external_id: str, attrs: PostAttributes,
        status: PostStatus = PostStatus.UNREAD,
    ) -> Post:
        """Insert a new post. Raises UniquenessConflict if the key exists."""
        ...

    def update(self, post: Post, attrs: PostAttributes) -> Post | None:
        """Overwrite every candidate attribute; status is left as stored.

        The write only applies while the row still has ``post.status``.
        Returns None when the status changed since ``post`` was read.
        """
        ...

    def count(self, source: str | None = None) -> int:
        ...

    def get(self, post_id: int) -> Post | None:
        ...

    def set_status(self, post_id: int, status: PostStatus) -> Post | None:
        ...

    def delete_posted_before(self, cutoff: datetime, batch_size: int = _DELETE_BATCH_SIZE) -> int:
        ...


def _load_tags(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    try:
        data = json.loads(raw)
    except ValueError:
        return ()
    return tuple(str(t) for t in data) if isinstance(data, list) else ()


def _row_to_post(row: sqlite3.Row) -> Post:
    return Post(
        id=row["id"],
        source=row["source"],
        external_id=row["external_id"],
        title=row["title"],
        url=row["url"],
        author=row["author"],
        posted_at=from_db_time(row["posted_at"]),
        summary=row["summary"] or "",
        status=PostStatus(row["status"]),
        priority_score=row["priority_score"],
        created_at=from_db_time(row["created_at"]),
        updated_at=from_db_time(row["updated_at"]),
        tags=_load_tags(row["tags"]),
    )


class SQLitePostStore:
    """PostStore over the ``posts`` table; one connection per operation."""

    def __init__(self, database_path: str, clock: Callable[[], datetime] = utcnow) -> None:
        self._database_path = database_path
        self._clock = clock

    def find_by_source_and_external_id(self, source: str, external_id: str) -> Post | None:
        with get_connection(self._database_path) as conn:
            row = conn.execute(
                "SELECT * FROM posts WHERE source = ? AND external_id = ?",
                (source, external_id),
            ).fetchone()
        return _row_to_post(row) if row else None

    def get(self, post_id: int) -> Post | None:
        with get_connection(self._database_path) as conn:
            row = conn.execute("SELECT * FROM posts WHERE id = ?", (post_id,)).fetchone()
        return _row_to_post(row) if row else None

    def create(
        self, source: str, external_id: str, attrs: PostAttributes,
        status: PostStatus = PostStatus.UNREAD,
    ) -> Post:
        now = to_db_time(self._clock())
        try:
            with get_connection(self._database_path) as conn:
                cursor = conn.execute(
                    "INSERT INTO posts "
                    "(source, external_id, title, url, author, posted_at, summary, tags, "
                    "status, priority_score, created_at, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        source, external_id, attrs.title, attrs.url, attrs.author,
                        to_db_time(attrs.posted_at), attrs.summary, json.dumps(list(attrs.tags)),
                        PostStatus(status).value, attrs.priority_score, now, now,
                    ),
                )
                post_id = cursor.lastrowid
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" not in str(exc):
                raise
            raise UniquenessConflict(
                f"post ({source!r}, {external_id!r}) already exists"
            ) from exc
        return self.get(post_id)

    def update(self, post: Post, attrs: PostAttributes) -> Post | None:
        with get_connection(self._database_path) as conn:
            cursor = conn.execute(
                "UPDATE posts SET title = ?, url = ?, author = ?, posted_at = ?, summary = ?, "
                "tags = ?, priority_score = ?, updated_at = ? WHERE id = ? AND status = ?",
                (
                    attrs.title, attrs.url, attrs.author, to_db_time(attrs.posted_at),
                    attrs.summary, json.dumps(list(attrs.tags)), attrs.priority_score,
                    to_db_time(self._clock()), post.id, post.status.value,
                ),
            )
            if cursor.rowcount == 0:
                return None
        return self.get(post.id)

    def count(self, source: str | None = None) -> int:
        with get_connection(self._database_path) as conn:
            if source is None:
                row = conn.execute("SELECT COUNT(*) AS n FROM posts").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM posts WHERE source = ?", (source,),
                ).fetchone()
        return row["n"]

    def set_status(self, post_id: int, status: PostStatus) -> Post | None:
        with get_connection(self._database_path) as conn:
            cursor = conn.execute(
                "UPDATE posts SET status = ?, updated_at = ? WHERE id = ?",
                (PostStatus(status).value, to_db_time(self._clock()), post_id),
            )
            if cursor.rowcount == 0:
                return None
        return self.get(post_id)

    def delete_posted_before(self, cutoff: datetime, batch_size: int = _DELETE_BATCH_SIZE) -> int:
        """Delete posts whose ``posted_at`` is older than ``cutoff``, in batches."""
        deleted = 0
        cutoff_text = to_db_time(cutoff)
        while True:
            # Short transactions keep the writer lock free for ingestion runs
            with get_connection(self._database_path) as conn:
                cursor = conn.execute(
                    "DELETE FROM posts WHERE id IN ("
                    "  SELECT id FROM posts WHERE posted_at < ? LIMIT ?"
                    ")",
                    (cutoff_text, batch_size),
                )
                batch = cursor.rowcount
            deleted += batch
            if batch < batch_size:
                break
        return deleted


class InMemoryPostStore:
    """PostStore kept in a dict, guarded by a lock. Used by tests."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._posts: dict[int, Post] = {}
        self._keys: dict[tuple[str, str], int] = {}
        self._next_id = 1

    def find_by_source_and_external_id(self, source: str, external_id: str) -> Post | None:
        with self._lock:
            post_id = self._keys.get((source, external_id))
            return self._posts.get(post_id) if post_id is not None else None

    def get(self, post_id: int) -> Post | None:
        with self._lock:
            return self._posts.get(post_id)

    def create(
        self, source: str, external_id: str, attrs: PostAttributes,
        status: PostStatus = PostStatus.UNREAD,
    ) -> Post:
        now = self._clock()
        with self._lock:
            key = (source, external_id)
            if key in self._keys:
                raise UniquenessConflict(f"post ({source!r}, {external_id!r}) already exists")
            post = Post(
                id=self._next_id,
                source=source,
                external_id=external_id,
                title=attrs.title,
                url=attrs.url,
                author=attrs.author,
                posted_at=attrs.posted_at,
                summary=attrs.summary,
                status=PostStatus(status),
                priority_score=attrs.priority_score,
                created_at=now,
                updated_at=now,
                tags=tuple(attrs.tags),
            )
            self._next_id += 1
            self._posts[post.id] = post
            self._keys[key] = post.id
            return post

    def update(self, post: Post, attrs: PostAttributes) -> Post | None:
        now = self._clock()
        with self._lock:
            current = self._posts.get(post.id)
            if current is None or current.status is not post.status:
                return None
            updated = replace(
                current,
                title=attrs.title,
                url=attrs.url,
                author=attrs.author,
                posted_at=attrs.posted_at,
                summary=attrs.summary,
                tags=tuple(attrs.tags),
                priority_score=attrs.priority_score,
                updated_at=now,
            )
            self._posts[post.id] = updated
            return updated

    def count(self, source: str | None = None) -> int:
        with self._lock:
            if source is None:
                return len(self._posts)
            return sum(1 for p in self._posts.values() if p.source == source)

    def set_status(self, post_id: int, status: PostStatus) -> Post | None:
        now = self._clock()
        with self._lock:
            current = self._posts.get(post_id)
            if current is None:
                return None
            updated = replace(current, status=PostStatus(status), updated_at=now)
            self._posts[post_id] = updated
            return updated

    def delete_posted_before(self, cutoff: datetime, batch_size: int = _DELETE_BATCH_SIZE) -> int:
        with self._lock:
            doomed = [p for p in self._posts.values() if p.posted_at < cutoff]
            for post in doomed:
                del self._posts[post.id]
                del self._keys[(post.source, post.external_id)]
            return len(doomed)
