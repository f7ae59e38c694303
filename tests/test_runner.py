"""Tests for devdash.ingestion.runner — status reporting and run isolation."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from devdash.ingestion.http import HttpFetcher
from devdash.ingestion.models import PostStatus
from devdash.ingestion.runner import IngestionRunner
from devdash.storage.posts import InMemoryPostStore
from devdash.storage.schema import init_db
from devdash.storage.sources import SourceRepository

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def _issue(number: int, **overrides) -> dict:
    issue = {
        "number": number,
        "title": f"Issue {number}",
        "html_url": f"https://github.com/acme/widgets/issues/{number}",
        "user": {"login": "octocat"},
        "body": "Something broke.",
        "labels": [{"name": "bug"}],
        "comments": 2,
        "created_at": "2025-06-15T10:00:00Z",
        "updated_at": "2025-06-15T10:00:00Z",
    }
    issue.update(overrides)
    return issue


def _topic(**overrides) -> dict:
    topic = {
        "id": 77,
        "title": "How do I pin memory?",
        "slug": "how-do-i-pin-memory",
        "excerpt": "I am trying to pin memory",
        "created_at": "2025-06-14T09:00:00Z",
        "last_posted_at": "2025-06-14T10:00:00Z",
        "last_poster_username": "alice",
        "reply_count": 1,
        "like_count": 0,
        "views": 10,
        "tags": [],
    }
    topic.update(overrides)
    return topic


class _Upstream:
    """Routes requests by path to canned JSON payloads, raw text, or status codes."""

    def __init__(self) -> None:
        self.routes: dict[str, object] = {}
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        payload = self.routes.get(request.url.path)
        if payload is None:
            return httpx.Response(404)
        if isinstance(payload, int):
            return httpx.Response(payload)
        if isinstance(payload, str):
            return httpx.Response(200, text=payload)
        return httpx.Response(200, content=json.dumps(payload))


@pytest.fixture()
def upstream():
    return _Upstream()


@pytest.fixture()
def sources(tmp_path):
    db_path = str(tmp_path / "test.db")
    init_db(db_path)
    return SourceRepository(db_path, clock=lambda: NOW)


@pytest.fixture()
def post_store():
    return InMemoryPostStore(clock=lambda: NOW)


@pytest.fixture()
def runner(post_store, sources, upstream):
    return IngestionRunner(
        post_store,
        sources,
        fetcher_factory=lambda: HttpFetcher(transport=httpx.MockTransport(upstream)),
        clock=lambda: NOW,
    )


class TestRunStatus:
    def test_new_posts_reported_in_status(self, runner, sources, post_store, upstream):
        upstream.routes["/repos/acme/widgets/issues"] = [_issue(1), _issue(2)]
        source = sources.create("Widgets Issues", "github", url="https://github.com/acme/widgets")

        result = runner.run(source)

        assert result.new_count == 2
        assert result.error is None
        stored = sources.get(source.id)
        assert stored.status == "ok (2 new)"
        assert stored.last_fetched_at == NOW
        assert post_store.count("Widgets Issues") == 2

    def test_second_run_with_same_data_reports_ok(self, runner, sources, post_store, upstream):
        upstream.routes["/repos/acme/widgets/issues"] = [_issue(1), _issue(2)]
        source = sources.create("Widgets Issues", "github", url="https://github.com/acme/widgets")

        runner.run(source)
        result = runner.run(source)

        assert result.new_count == 0
        assert sources.get(source.id).status == "ok"
        assert post_store.count() == 2

    def test_invalid_subreddit_url_sets_error_status(self, runner, sources):
        source = sources.create("Broken Reddit", "reddit", url="https://example.com")

        result = runner.run(source)

        assert result.error is not None
        stored = sources.get(source.id)
        assert stored.status == "error: invalid subreddit URL"
        assert stored.last_fetched_at is None

    def test_upstream_http_error_sets_error_status(self, runner, sources, upstream):
        upstream.routes["/r/python/hot.json"] = 500
        source = sources.create("Python Reddit", "reddit", url="https://www.reddit.com/r/python")

        result = runner.run(source)

        assert result.new_count == 0
        assert sources.get(source.id).status == "error: HTTP 500"

    def test_invalid_item_is_skipped(self, runner, sources, post_store, upstream):
        upstream.routes["/repos/acme/widgets/issues"] = [
            _issue(1),
            _issue(2, title=""),
            _issue(3, html_url="not a url"),
        ]
        source = sources.create("Widgets Issues", "github", url="https://github.com/acme/widgets")

        result = runner.run(source)

        assert result.new_count == 1
        assert sources.get(source.id).status == "ok (1 new)"
        assert post_store.find_by_source_and_external_id("Widgets Issues", "1") is not None

    def test_priority_score_comes_from_adapter(self, runner, sources, post_store, upstream):
        upstream.routes["/repos/acme/widgets/issues"] = [_issue(1, comments=10)]
        source = sources.create("Widgets Issues", "github", url="https://github.com/acme/widgets")

        runner.run(source)

        post = post_store.find_by_source_and_external_id("Widgets Issues", "1")
        # 10 comments * 0.5 + bug 3.0 + (10 - 2h) * 0.3
        assert post.priority_score == pytest.approx(5.0 + 3.0 + 8 * 0.3)


class TestDiscourseActivity:
    def test_newer_last_posted_at_updates_read_post(self, runner, sources, post_store, upstream):
        upstream.routes["/latest.json"] = {"topic_list": {"topics": [_topic()]}}
        source = sources.create("HF Forum", "discourse", url="https://discuss.huggingface.co")
        runner.run(source)

        post = post_store.find_by_source_and_external_id("HF Forum", "77")
        post_store.set_status(post.id, PostStatus.READ)

        upstream.routes["/latest.json"] = {
            "topic_list": {"topics": [_topic(last_posted_at="2025-06-15T11:00:00Z", reply_count=2)]},
        }
        result = runner.run(source)

        assert result.new_count == 0
        updated = post_store.find_by_source_and_external_id("HF Forum", "77")
        assert updated.status is PostStatus.READ
        assert updated.posted_at == datetime(2025, 6, 15, 11, 0, tzinfo=timezone.utc)


_UNDATED_FEED = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Undated</title>
<item>
  <title>Release notes</title>
  <link>https://example.com/release-notes</link>
  <guid>release-notes-1</guid>
  <description>What changed.</description>
</item>
</channel></rss>"""


class TestUndatedFeedEntry:
    def test_read_post_keeps_posted_at_across_runs(self, sources, post_store, upstream):
        clock = {"now": NOW}
        runner = IngestionRunner(
            post_store,
            sources,
            fetcher_factory=lambda: HttpFetcher(transport=httpx.MockTransport(upstream)),
            clock=lambda: clock["now"],
        )
        upstream.routes["/feed.xml"] = _UNDATED_FEED
        source = sources.create("Undated Feed", "rss", url="https://example.com/feed.xml")

        runner.run(source)
        first = post_store.find_by_source_and_external_id("Undated Feed", "release-notes-1")
        post_store.set_status(first.id, PostStatus.READ)

        clock["now"] = NOW + timedelta(minutes=2)
        result = runner.run(source)

        assert result.new_count == 0
        after = post_store.get(first.id)
        assert after.posted_at == first.posted_at == NOW
        assert after.status is PostStatus.READ

    def test_unread_post_is_identical_after_rerun(self, sources, post_store, upstream):
        clock = {"now": NOW}
        runner = IngestionRunner(
            post_store,
            sources,
            fetcher_factory=lambda: HttpFetcher(transport=httpx.MockTransport(upstream)),
            clock=lambda: clock["now"],
        )
        upstream.routes["/feed.xml"] = _UNDATED_FEED
        source = sources.create("Undated Feed", "rss", url="https://example.com/feed.xml")

        runner.run(source)
        first = post_store.find_by_source_and_external_id("Undated Feed", "release-notes-1")
        clock["now"] = NOW + timedelta(hours=3)
        runner.run(source)

        after = post_store.get(first.id)
        assert after.posted_at == first.posted_at
        assert (after.title, after.summary, after.priority_score) == (
            first.title, first.summary, first.priority_score,
        )


class TestRefreshAll:
    def test_one_failing_source_does_not_affect_others(self, runner, sources, upstream):
        upstream.routes["/repos/acme/widgets/issues"] = [_issue(1)]
        good = sources.create("Widgets Issues", "github", url="https://github.com/acme/widgets")
        bad = sources.create("Broken Reddit", "reddit", url="https://example.com/r")

        results = runner.refresh_all(max_workers=2)

        assert results[good.id].new_count == 1
        assert results[bad.id].error is not None
        assert sources.get(good.id).status == "ok (1 new)"
        assert sources.get(bad.id).status == "error: invalid subreddit URL"

    def test_inactive_and_manual_sources_are_not_refreshed(self, runner, sources, upstream):
        upstream.routes["/repos/acme/widgets/issues"] = [_issue(1)]
        sources.create(
            "Inactive", "github", url="https://github.com/acme/widgets", active=False,
        )
        sources.create(
            "Manual", "github", url="https://github.com/acme/gadgets", auto_fetch_enabled=False,
        )

        results = runner.refresh_all()

        assert results == {}
        assert upstream.calls == []


class TestConcurrentRun:
    def test_busy_source_is_skipped(self, runner, sources, upstream):
        upstream.routes["/repos/acme/widgets/issues"] = [_issue(1)]
        source = sources.create("Widgets Issues", "github", url="https://github.com/acme/widgets")

        lock = runner._lock_for(source.id)
        lock.acquire()
        try:
            result = runner.run(source)
        finally:
            lock.release()

        assert result.skipped is True
        assert result.new_count == 0
        assert sources.get(source.id).status is None
        assert upstream.calls == []
