"""Tests for devdash.jobs — scheduled job functions."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from devdash import jobs
from devdash.config import Config
from devdash.ingestion.models import PostAttributes
from devdash.ingestion.runner import RunResult
from devdash.jobs import (
    get_runner,
    run_cleanup,
    run_refresh_all,
    run_refresh_source,
    seed_sources,
)
from devdash.storage.connection import get_connection
from devdash.storage.posts import SQLitePostStore
from devdash.storage.schema import init_db
from devdash.storage.sources import SourceRepository


def _make_config(tmp_path, **overrides) -> Config:
    """Create a test Config pointing at a temp database and sources file."""
    db_path = str(tmp_path / "test.db")
    sources_path = str(tmp_path / "sources.json")

    sources = overrides.pop("_sources", {
        "sources": [
            {"name": "Ruby Weekly", "source_type": "rss", "url": "https://rubyweekly.com/rss"},
        ]
    })
    with open(sources_path, "w") as f:
        json.dump(sources, f)

    defaults = {
        "database_path": db_path,
        "sources_config_path": sources_path,
        "post_retention_days": 30,
    }
    defaults.update(overrides)
    init_db(db_path)
    return Config(**defaults)


def _runs(config):
    with get_connection(config.database_path) as conn:
        rows = conn.execute("SELECT * FROM pipeline_runs ORDER BY started_at").fetchall()
    return [dict(r) for r in rows]


@pytest.fixture(autouse=True)
def _fresh_runner_cache():
    jobs._runners.clear()
    yield
    jobs._runners.clear()


class TestSeedSources:
    def test_seeds_from_file(self, tmp_path):
        config = _make_config(tmp_path)
        assert seed_sources(config) == 1
        names = [s.name for s in SourceRepository(config.database_path).list_all()]
        assert names == ["Ruby Weekly"]


class TestGetRunner:
    def test_runner_is_shared_per_database(self, tmp_path):
        config = _make_config(tmp_path)
        assert get_runner(config) is get_runner(config)

    def test_different_databases_get_different_runners(self, tmp_path):
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        first = _make_config(tmp_path / "a")
        second = _make_config(tmp_path / "b")
        assert get_runner(first) is not get_runner(second)


class TestRunRefreshAll:
    @patch("devdash.jobs.get_runner")
    def test_records_run_summary(self, mock_get_runner, tmp_path):
        config = _make_config(tmp_path, refresh_max_workers=2)
        runner = MagicMock()
        runner.refresh_all.return_value = {
            1: RunResult(new_count=3),
            2: RunResult(error=RuntimeError("HTTP 500")),
            3: RunResult(skipped=True),
        }
        mock_get_runner.return_value = runner

        run_refresh_all(config)

        runner.refresh_all.assert_called_once_with(max_workers=2)
        runs = _runs(config)
        assert len(runs) == 1
        assert runs[0]["run_type"] == "refresh"
        assert runs[0]["status"] == "success"
        assert json.loads(runs[0]["result"]) == {
            "sources": 3, "posts_new": 3, "sources_failed": 1, "sources_skipped": 1,
        }

    @patch("devdash.jobs.get_runner")
    def test_failure_is_recorded_not_raised(self, mock_get_runner, tmp_path):
        config = _make_config(tmp_path)
        mock_get_runner.return_value.refresh_all.side_effect = RuntimeError("boom")

        run_refresh_all(config)

        runs = _runs(config)
        assert runs[0]["status"] == "error"
        assert runs[0]["error"] == "Refresh failed (see logs)"


class TestRunRefreshSource:
    def test_unknown_source_returns_none(self, tmp_path):
        config = _make_config(tmp_path)
        assert run_refresh_source(config, 999) is None
        assert _runs(config) == []

    @patch("devdash.jobs.get_runner")
    def test_runs_one_source(self, mock_get_runner, tmp_path):
        config = _make_config(tmp_path)
        seed_sources(config)
        source = SourceRepository(config.database_path).get_by_name("Ruby Weekly")
        mock_get_runner.return_value.run.return_value = RunResult(new_count=2)

        result = run_refresh_source(config, source.id)

        assert result.new_count == 2
        called_with = mock_get_runner.return_value.run.call_args[0][0]
        assert called_with.id == source.id
        runs = _runs(config)
        assert runs[0]["status"] == "success"
        assert json.loads(runs[0]["result"])["posts_new"] == 2

    @patch("devdash.jobs.get_runner")
    def test_source_error_marks_run_as_error(self, mock_get_runner, tmp_path):
        config = _make_config(tmp_path)
        seed_sources(config)
        source = SourceRepository(config.database_path).get_by_name("Ruby Weekly")
        mock_get_runner.return_value.run.return_value = RunResult(
            error=RuntimeError("Invalid RSS feed format"),
        )

        run_refresh_source(config, source.id)

        runs = _runs(config)
        assert runs[0]["status"] == "error"
        assert runs[0]["error"] == "Invalid RSS feed format"


class TestRunCleanup:
    def test_deletes_only_expired_posts(self, tmp_path):
        config = _make_config(tmp_path, post_retention_days=30)
        store = SQLitePostStore(config.database_path)
        now = datetime.now(timezone.utc)
        for i in range(150):
            store.create("Feed", f"old-{i}", PostAttributes(
                title="Old", url="https://example.com/old", author="a",
                posted_at=now - timedelta(days=31),
            ))
        store.create("Feed", "fresh", PostAttributes(
            title="Fresh", url="https://example.com/fresh", author="a",
            posted_at=now - timedelta(days=29),
        ))

        run_cleanup(config)

        assert store.count() == 1
        runs = _runs(config)
        assert runs[0]["run_type"] == "cleanup"
        assert json.loads(runs[0]["result"]) == {"posts_deleted": 150, "retention_days": 30}

    @patch("devdash.jobs.SQLitePostStore")
    def test_failure_is_recorded(self, mock_store_cls, tmp_path):
        config = _make_config(tmp_path)
        mock_store_cls.return_value.delete_posted_before.side_effect = RuntimeError("locked")

        run_cleanup(config)

        runs = _runs(config)
        assert runs[0]["status"] == "error"
        assert runs[0]["error"] == "Cleanup failed (see logs)"
