"""Ingestion pipeline — source adapters, reconciliation, and the runner."""

from devdash.ingestion.discourse_adapter import (
    DiscourseAdapter,
    PyTorchDiscourseAdapter,
    is_pytorch_forum,
)
from devdash.ingestion.github_adapter import GitHubAdapter
from devdash.ingestion.github_trending_adapter import GitHubTrendingAPIAdapter
from devdash.ingestion.github_trending_scraper import GitHubTrendingScrapeAdapter
from devdash.ingestion.hn_adapter import HackerNewsAdapter
from devdash.ingestion.reddit_adapter import RedditAdapter
from devdash.ingestion.registry import register_adapter, register_variant, url_host
from devdash.ingestion.rss_adapter import RSSAdapter
from devdash.ingestion.source_config import bool_value

register_adapter("github", GitHubAdapter)
register_adapter("github_trending", GitHubTrendingAPIAdapter)
register_adapter("rss", RSSAdapter)
register_adapter("reddit", RedditAdapter)
register_adapter("discourse", DiscourseAdapter)

register_variant(
    "rss",
    lambda source: url_host(source.url) == "news.ycombinator.com",
    HackerNewsAdapter,
)
register_variant(
    "discourse",
    lambda source: is_pytorch_forum(source.url, source.name),
    PyTorchDiscourseAdapter,
)
register_variant(
    "github_trending",
    lambda source: bool_value(source.config_hash().get("use_scraper")),
    GitHubTrendingScrapeAdapter,
)
