"""Tests for devdash.ingestion.github_trending_scraper — trending page HTML."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from devdash.ingestion.github_trending_scraper import (
    GitHubTrendingScrapeAdapter,
    TrendingRepo,
    parse_number,
    parse_trending_page,
)
from devdash.ingestion.http import HttpFetcher
from devdash.ingestion.models import Source

NOW = datetime(2025, 6, 15, 12, 30, tzinfo=timezone.utc)

_ARTICLE = """
<article class="Box-row">
  <h2 class="h3 lh-condensed"><a href="/{full_name}">{full_name}</a></h2>
  <p class="col-9 color-fg-muted my-1 pr-4">{description}</p>
  <div class="f6 color-fg-muted mt-2">
    <span itemprop="programmingLanguage">Python</span>
    <a class="Link--muted d-inline-block mr-3" href="/{full_name}/stargazers">
      <svg class="octicon octicon-star"></svg> {stars}
    </a>
    <a class="Link--muted d-inline-block mr-3" href="/{full_name}/forks">
      <svg class="octicon octicon-repo-forked"></svg> {forks}
    </a>
    <span class="d-inline-block float-sm-right">
      <svg class="octicon octicon-star"></svg> {today} stars today
    </span>
  </div>
</article>
"""


def _page(*articles: str) -> str:
    return "<html><body><div class='Box'>" + "".join(articles) + "</div></body></html>"


def _article(full_name="psf/black", description="The uncompromising formatter",
             stars="38,120", forks="2,450", today="215") -> str:
    return _ARTICLE.format(
        full_name=full_name, description=description, stars=stars, forks=forks, today=today,
    )


def _adapter(handler=None, config=None):
    source = Source(
        id=1, name="Trending Python", source_type="github_trending",
        config=json.dumps({"use_scraper": True, **(config or {})}),
    )
    handler = handler or (lambda request: httpx.Response(200, text=_page()))
    fetcher = HttpFetcher(transport=httpx.MockTransport(handler))
    return GitHubTrendingScrapeAdapter(source, fetcher, clock=lambda: NOW)


class TestParseNumber:
    @pytest.mark.parametrize("text,expected", [
        ("1,234", 1234),
        (" 38,120 ", 38120),
        ("", 0),
        ("n/a", 0),
    ])
    def test_parse(self, text, expected):
        assert parse_number(text) == expected


class TestParsePage:
    def test_parses_repository_blocks(self):
        html = _page(_article(), _article("astral-sh/ruff", "Fast linter", "30", "1", "5"))
        repos = parse_trending_page(html)

        assert len(repos) == 2
        first = repos[0]
        assert first == TrendingRepo(
            author="psf", name="black", description="The uncompromising formatter",
            language="Python", stars=38120, forks=2450, stars_today=215, rank=1,
        )
        assert first.url == "https://github.com/psf/black"
        assert repos[1].rank == 2

    def test_malformed_block_is_skipped(self):
        broken = '<article class="Box-row"><h2><a href="/nobody">x</a></h2></article>'
        repos = parse_trending_page(_page(broken, _article()))
        assert [r.full_name for r in repos] == ["psf/black"]

    def test_block_without_link_is_skipped(self):
        repos = parse_trending_page(_page('<article class="Box-row"><h2></h2></article>'))
        assert repos == []


class TestFetch:
    def test_request_uses_window_and_language(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, text=_page(_article()))

        adapter = _adapter(handler, config={"since": "weekly", "language": "python"})
        repos = adapter.fetch_items()

        assert seen["path"] == "/trending"
        assert seen["params"] == {"since": "weekly", "language": "python"}
        assert len(repos) == 1


class TestMapping:
    def test_to_post_attributes(self):
        repo = parse_trending_page(_page(_article()))[0]
        external_id, attrs = _adapter().to_post_attributes(repo)

        assert external_id == "psf/black"
        assert attrs.title == "psf/black - The uncompromising formatter"
        assert attrs.author == "psf"
        assert attrs.posted_at == datetime(2025, 6, 15, tzinfo=timezone.utc)
        assert attrs.summary == (
            "The uncompromising formatter | 215 stars today | 38120 total stars"
            " | 2450 forks | Python"
        )
        assert attrs.tags == ("Python", "trending", "hot", "popular", "top-10")

    def test_rising_tag(self):
        repo = TrendingRepo(author="a", name="b", stars_today=50, rank=30)
        _, attrs = _adapter().to_post_attributes(repo)
        assert attrs.tags == ("trending", "rising")
        assert attrs.title == "a/b"


class TestScore:
    def test_score(self):
        adapter = _adapter(config={"preferred_languages": ["Python"]})
        repo = TrendingRepo(
            author="a", name="b", language="Python",
            stars=1000, forks=100, stars_today=40, rank=5,
        )
        expected = 30.0 + 40 * 0.5 + 10.0 + 20 + (26 - 5) * 2
        assert adapter.score(repo) == pytest.approx(expected)

    def test_rank_bonus_vanishes_past_25(self):
        repo = TrendingRepo(author="a", name="b", rank=30)
        assert _adapter().score(repo) == pytest.approx(0.0)
