"""Tests for devdash.ingestion.registry — adapter registry and sniffing."""

from __future__ import annotations

import json

import httpx
import pytest

import devdash.ingestion  # noqa: F401  registers the default adapters
from devdash.ingestion.adapter import SourceAdapter
from devdash.ingestion.discourse_adapter import DiscourseAdapter, PyTorchDiscourseAdapter
from devdash.ingestion.errors import InvalidSourceError
from devdash.ingestion.github_adapter import GitHubAdapter
from devdash.ingestion.github_trending_adapter import GitHubTrendingAPIAdapter
from devdash.ingestion.github_trending_scraper import GitHubTrendingScrapeAdapter
from devdash.ingestion.hn_adapter import HackerNewsAdapter
from devdash.ingestion.http import HttpFetcher
from devdash.ingestion.models import Source
from devdash.ingestion.reddit_adapter import RedditAdapter
from devdash.ingestion.registry import (
    _REGISTRY,
    _VARIANTS,
    build_adapter,
    get_adapter_class,
    register_adapter,
    register_variant,
    registered_types,
    resolve_adapter_class,
    url_host,
)
from devdash.ingestion.rss_adapter import RSSAdapter


class _DummyAdapter(SourceAdapter):
    @property
    def name(self) -> str:
        return "dummy"

    def configure(self, config: dict) -> None:
        self.config = config

    def fetch_items(self):
        return []

    def to_post_attributes(self, item):
        raise NotImplementedError

    def score(self, item):
        return 0.0


def _source(source_type, url=None, name="Source", config=None):
    return Source(
        id=1, name=name, source_type=source_type, url=url,
        config=json.dumps(config) if config is not None else None,
    )


class TestRegistry:
    def setup_method(self):
        self._original = dict(_REGISTRY)
        self._original_variants = {k: list(v) for k, v in _VARIANTS.items()}

    def teardown_method(self):
        _REGISTRY.clear()
        _REGISTRY.update(self._original)
        _VARIANTS.clear()
        _VARIANTS.update(self._original_variants)

    def test_register_and_lookup(self):
        register_adapter("dummy", _DummyAdapter)
        assert get_adapter_class("dummy") is _DummyAdapter

    def test_lookup_unknown_returns_none(self):
        assert get_adapter_class("nonexistent") is None

    def test_registered_types_sorted(self):
        assert registered_types() == [
            "discourse", "github", "github_trending", "reddit", "rss",
        ]

    def test_variant_wins_over_default(self):
        register_adapter("dummy", RSSAdapter)
        register_variant("dummy", lambda s: s.name == "special", _DummyAdapter)
        assert resolve_adapter_class(_source("dummy", name="special")) is _DummyAdapter
        assert resolve_adapter_class(_source("dummy", name="plain")) is RSSAdapter

    def test_unknown_type_raises(self):
        with pytest.raises(InvalidSourceError, match="unknown source type 'gopher'"):
            resolve_adapter_class(_source("gopher"))


class TestSniffing:
    @pytest.mark.parametrize("source,expected", [
        (_source("github", "https://github.com/rails/rails"), GitHubAdapter),
        (_source("reddit", "https://www.reddit.com/r/ruby"), RedditAdapter),
        (_source("rss", "https://rubyweekly.com/rss"), RSSAdapter),
        (_source("rss", "https://news.ycombinator.com/rss"), HackerNewsAdapter),
        (_source("discourse", "https://discuss.huggingface.co"), DiscourseAdapter),
        (_source("discourse", "https://discuss.pytorch.org"), PyTorchDiscourseAdapter),
        (_source("discourse", "https://forum.example.com", name="PyTorch Forum"),
         PyTorchDiscourseAdapter),
        (_source("github_trending"), GitHubTrendingAPIAdapter),
        (_source("github_trending", config={"use_scraper": True}), GitHubTrendingScrapeAdapter),
        (_source("github_trending", config={"use_scraper": "yes"}), GitHubTrendingAPIAdapter),
    ])
    def test_resolve(self, source, expected):
        assert resolve_adapter_class(source) is expected

    def test_build_adapter_configures_from_source(self):
        register_adapter("dummy", _DummyAdapter)
        try:
            with HttpFetcher(transport=httpx.MockTransport(lambda r: httpx.Response(200))) as f:
                adapter = build_adapter(_source("dummy", config={"a": 1}), f)
        finally:
            _REGISTRY.pop("dummy", None)
        assert isinstance(adapter, _DummyAdapter)
        assert adapter.config == {"a": 1}
        assert adapter.source.name == "Source"

    def test_url_host(self):
        assert url_host("https://News.YCombinator.com/rss") == "news.ycombinator.com"
        assert url_host(None) == ""
