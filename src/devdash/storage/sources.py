"""Source persistence — load sources, save run status, seed from a JSON file."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Callable

from devdash.ingestion.errors import InvalidSourceError
from devdash.ingestion.models import VALID_SOURCE_TYPES, Source, utcnow
from devdash.ingestion.status import SourceStatus
from devdash.storage.connection import from_db_time, get_connection, to_db_time

logger = logging.getLogger(__name__)


def _row_to_source(row: sqlite3.Row) -> Source:
    return Source(
        id=row["id"],
        name=row["name"],
        source_type=row["source_type"],
        url=row["url"],
        config=row["config"],
        active=bool(row["active"]),
        auto_fetch_enabled=bool(row["auto_fetch_enabled"]),
        last_fetched_at=from_db_time(row["last_fetched_at"]),
        status=row["status"],
    )


def _config_text(config: object) -> str | None:
    """Seed files may carry config as an object or as raw JSON text."""
    if config is None or isinstance(config, str):
        return config
    return json.dumps(config)


class SourceRepository:
    """Reads and writes the ``sources`` table."""

    def __init__(self, database_path: str, clock: Callable[[], datetime] = utcnow) -> None:
        self._database_path = database_path
        self._clock = clock

    def get(self, source_id: int) -> Source | None:
        with get_connection(self._database_path) as conn:
            row = conn.execute("SELECT * FROM sources WHERE id = ?", (source_id,)).fetchone()
        return _row_to_source(row) if row else None

    def get_by_name(self, name: str) -> Source | None:
        with get_connection(self._database_path) as conn:
            row = conn.execute(
                "SELECT * FROM sources WHERE name = ? ORDER BY id LIMIT 1", (name,),
            ).fetchone()
        return _row_to_source(row) if row else None

    def list_all(self) -> list[Source]:
        with get_connection(self._database_path) as conn:
            rows = conn.execute("SELECT * FROM sources ORDER BY name, id").fetchall()
        return [_row_to_source(r) for r in rows]

    def list_auto_fetch(self) -> list[Source]:
        """Sources that refresh-all should run: active and auto-fetch enabled."""
        with get_connection(self._database_path) as conn:
            rows = conn.execute(
                "SELECT * FROM sources WHERE active = 1 AND auto_fetch_enabled = 1 "
                "ORDER BY name, id"
            ).fetchall()
        return [_row_to_source(r) for r in rows]

    def create(
        self,
        name: str,
        source_type: str,
        url: str | None = None,
        config: str | dict | None = None,
        active: bool = True,
        auto_fetch_enabled: bool = True,
    ) -> Source:
        if source_type not in VALID_SOURCE_TYPES:
            raise InvalidSourceError(f"unknown source type '{source_type}'")
        if not name or not name.strip():
            raise InvalidSourceError("source name is required")
        if url is None and source_type != "github_trending":
            raise InvalidSourceError(f"url is required for {source_type} sources")

        now = to_db_time(self._clock())
        with get_connection(self._database_path) as conn:
            cursor = conn.execute(
                "INSERT INTO sources "
                "(name, source_type, url, config, active, auto_fetch_enabled, "
                "created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    name.strip(), source_type, url, _config_text(config),
                    int(active), int(auto_fetch_enabled), now, now,
                ),
            )
            source_id = cursor.lastrowid
        return self.get(source_id)

    def save_status(
        self, source_id: int, status: SourceStatus, fetched_at: datetime | None = None,
    ) -> None:
        """Store the formatted status; ``last_fetched_at`` only moves when given."""
        now = to_db_time(self._clock())
        with get_connection(self._database_path) as conn:
            if fetched_at is None:
                conn.execute(
                    "UPDATE sources SET status = ?, updated_at = ? WHERE id = ?",
                    (status.format(), now, source_id),
                )
            else:
                conn.execute(
                    "UPDATE sources SET status = ?, last_fetched_at = ?, updated_at = ? "
                    "WHERE id = ?",
                    (status.format(), to_db_time(fetched_at), now, source_id),
                )

    def upsert_seed(self, seed: dict) -> Source:
        """Insert a seed source, or refresh its settings if one with the same URL exists.

        Sources without a URL (GitHub trending) are matched by name. Status
        and ``last_fetched_at`` are never touched.
        """
        url = seed.get("url")
        name = seed.get("name") or ""
        with get_connection(self._database_path) as conn:
            if url:
                row = conn.execute("SELECT id FROM sources WHERE url = ?", (url,)).fetchone()
            else:
                row = conn.execute(
                    "SELECT id FROM sources WHERE url IS NULL AND name = ?", (name,),
                ).fetchone()

        if row is None:
            return self.create(
                name=name,
                source_type=seed.get("source_type", ""),
                url=url,
                config=seed.get("config"),
                active=seed.get("active", True),
                auto_fetch_enabled=seed.get("auto_fetch_enabled", True),
            )

        with get_connection(self._database_path) as conn:
            conn.execute(
                "UPDATE sources SET name = ?, config = ?, active = ?, auto_fetch_enabled = ?, "
                "updated_at = ? WHERE id = ?",
                (
                    name, _config_text(seed.get("config")),
                    int(seed.get("active", True)), int(seed.get("auto_fetch_enabled", True)),
                    to_db_time(self._clock()), row["id"],
                ),
            )
        return self.get(row["id"])

    def load_sources_file(self, path: str | Path) -> int:
        """Seed sources from a JSON file of the form ``{"sources": [...]}``.

        A missing file is not an error. Invalid entries are logged and skipped.
        Returns the number of sources inserted or refreshed.
        """
        path = Path(path)
        if not path.exists():
            logger.info("No sources file at %s, skipping seed", path)
            return 0

        with open(path) as f:
            data = json.load(f)

        seeded = 0
        for seed in data.get("sources", []):
            try:
                self.upsert_seed(seed)
            except InvalidSourceError as exc:
                logger.warning("Skipping seed source %r: %s", seed.get("name"), exc)
                continue
            seeded += 1
        logger.info("Seeded %d sources from %s", seeded, path)
        return seeded
