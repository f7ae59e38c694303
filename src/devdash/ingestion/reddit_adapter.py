"""Reddit source adapter — one subreddit listing via the public JSON endpoint."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from devdash.ingestion.adapter import SourceAdapter, matches_any_keyword
from devdash.ingestion.errors import InvalidSourceError, UpstreamFormatError
from devdash.ingestion.models import PostAttributes, hours_between
from devdash.ingestion.source_config import int_value, str_list, str_value

logger = logging.getLogger(__name__)

_REDDIT_URL = "https://www.reddit.com"
_SUBREDDIT_RE = re.compile(r"reddit\.com/r/([^/]+)")
_IMAGE_RE = re.compile(r"\.(jpg|jpeg|png|gif|webp)$", re.IGNORECASE)
_SUMMARY_LENGTH = 1000


def extract_subreddit(url: str | None) -> str | None:
    """Return the subreddit name from a reddit.com URL, or None."""
    match = _SUBREDDIT_RE.search(url or "")
    return match.group(1) if match else None


def _content_type_tag(post: dict) -> str | None:
    url = post.get("url") or ""
    if post.get("is_self"):
        return "text-post"
    if "youtube.com" in url or "youtu.be" in url:
        return "video"
    if _IMAGE_RE.search(url):
        return "image"
    if "github.com" in url:
        return "github"
    return None


@dataclass(frozen=True)
class RedditConfig:
    sort: str = "hot"
    limit: int = 25
    keywords: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, config: dict) -> RedditConfig:
        return cls(
            sort=str_value(config.get("sort"), "hot"),
            limit=int_value(config.get("limit"), 25),
            keywords=str_list(config.get("keywords")),
        )


class RedditAdapter(SourceAdapter):
    """Adapter for a single subreddit listing (hot/new/top)."""

    @property
    def name(self) -> str:
        return "reddit"

    def configure(self, config: dict) -> None:
        self._config = RedditConfig.from_dict(config)

    def fetch_items(self) -> list[dict]:
        subreddit = extract_subreddit(self.source.url)
        if not subreddit:
            raise InvalidSourceError("invalid subreddit URL")
        self._subreddit = subreddit

        data = self._fetcher.get_json(
            f"{_REDDIT_URL}/r/{subreddit}/{self._config.sort}.json",
            params={"limit": self._config.limit},
        )
        if not isinstance(data, dict):
            raise UpstreamFormatError("Unexpected Reddit listing payload")

        items = []
        for child in (data.get("data") or {}).get("children") or []:
            post = child.get("data") if isinstance(child, dict) else None
            if not post or post.get("stickied"):
                continue
            if not post.get("url") and not post.get("selftext"):
                continue
            if not matches_any_keyword(
                f"{post.get('title') or ''} {self._content(post)}", self._config.keywords,
            ):
                continue
            items.append(post)

        logger.info("Fetched %d posts from r/%s", len(items), subreddit)
        return items

    @staticmethod
    def _content(post: dict) -> str:
        return post.get("selftext") or post.get("url") or ""

    def to_post_attributes(self, item: dict) -> tuple[str, PostAttributes]:
        content = self._content(item)
        if len(content) > _SUMMARY_LENGTH:
            content = content[:_SUMMARY_LENGTH] + "..."
        return str(item.get("id") or ""), PostAttributes(
            title=(item.get("title") or "").strip(),
            url=f"{_REDDIT_URL}{item.get('permalink') or ''}",
            author=item.get("author") or "unknown",
            posted_at=self._posted_at(item),
            summary=content,
            tags=self._tags(item),
        )

    def score(self, item: dict) -> float:
        base = (item.get("score") or 0) * 0.1 + (item.get("num_comments") or 0) * 0.5
        posted_at = self._posted_at(item)
        decay = 1.0
        if posted_at is not None:
            decay = 1.0 / (1.0 + hours_between(posted_at, self._clock()) / 24.0)
        return max(round(base * decay, 2), 1.0)

    @staticmethod
    def _posted_at(item: dict) -> datetime | None:
        created = item.get("created_utc")
        if created is None:
            return None
        return datetime.fromtimestamp(int(created), tz=timezone.utc)

    def _tags(self, item: dict) -> tuple[str, ...]:
        subreddit = getattr(self, "_subreddit", None) or extract_subreddit(self.source.url)
        tags = [f"subreddit:{subreddit}", "reddit"]
        flair = (item.get("link_flair_text") or "").strip()
        if flair:
            tags.append(flair)
        content_tag = _content_type_tag(item)
        if content_tag:
            tags.append(content_tag)
        return tuple(tags)
