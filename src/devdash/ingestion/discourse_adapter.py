"""Discourse forum source adapter — latest topics of a Discourse instance."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from devdash.ingestion.adapter import (
    SourceAdapter,
    squash_whitespace,
    strip_html,
    truncate_text,
)
from devdash.ingestion.errors import IngestionError, InvalidSourceError, UpstreamFormatError
from devdash.ingestion.models import PostAttributes, hours_between, parse_timestamp
from devdash.ingestion.source_config import bool_value, str_list, str_value

logger = logging.getLogger(__name__)

_FULL_CONTENT_LENGTH = 1000
_VIEW_POST_RE = re.compile(r"\s*View Post\s*$")


def is_pytorch_forum(url: str | None, name: str) -> bool:
    """True for discuss.pytorch.org style hosts or sources named after PyTorch."""
    host = (urlparse(url or "").hostname or "").lower()
    if host == "pytorch.org" or host.endswith(".pytorch.org"):
        return True
    return "pytorch" in name.lower()


def clean_excerpt(excerpt: str | None) -> str:
    """Collapse whitespace and drop the trailing "View Post" link text."""
    return _VIEW_POST_RE.sub("", squash_whitespace(excerpt or ""))


@dataclass(frozen=True)
class DiscourseConfig:
    api_key: str = ""
    api_username: str = "system"
    fetch_full_content: bool = False
    include_category_as_tag: bool = False
    priority_tags: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, config: dict) -> DiscourseConfig:
        return cls(
            api_key=str_value(config.get("api_key")),
            api_username=str_value(config.get("api_username"), "system"),
            fetch_full_content=bool_value(config.get("fetch_full_content")),
            include_category_as_tag=bool_value(config.get("include_category_as_tag")),
            priority_tags=str_list(config.get("priority_tags")),
        )


class DiscourseAdapter(SourceAdapter):
    """Adapter for the latest topics of a Discourse forum."""

    @property
    def name(self) -> str:
        return "discourse"

    def configure(self, config: dict) -> None:
        self._config = DiscourseConfig.from_dict(config)
        self._categories: dict[int, str] | None = None

    @property
    def base_url(self) -> str:
        return (self.source.url or "").rstrip("/")

    def _headers(self) -> dict[str, str]:
        if not self._config.api_key:
            return {}
        return {
            "Api-Key": self._config.api_key,
            "Api-Username": self._config.api_username,
        }

    def fetch_items(self) -> list[dict]:
        if not self.base_url:
            raise InvalidSourceError("missing forum URL")

        data = self._fetcher.get_json(
            f"{self.base_url}/latest.json", params={"page": 0}, headers=self._headers(),
        )
        topics = (data.get("topic_list") or {}).get("topics") if isinstance(data, dict) else None
        if not isinstance(topics, list):
            raise UpstreamFormatError("Unexpected Discourse topic list payload")

        logger.info("Fetched %d topics from %s", len(topics), self.source.name)
        return [t for t in topics if isinstance(t, dict) and t.get("id") is not None]

    def to_post_attributes(self, item: dict) -> tuple[str, PostAttributes]:
        topic_id = item["id"]
        slug = item.get("slug") or f"topic-{topic_id}"
        # Last activity drives the "posted_at changed" update signal
        posted_at = parse_timestamp(item.get("last_posted_at")) or parse_timestamp(
            item.get("created_at")
        )
        summary = clean_excerpt(item.get("excerpt"))
        if self._config.fetch_full_content:
            summary = self._full_content(topic_id, summary)

        return str(topic_id), PostAttributes(
            title=(item.get("title") or "").strip(),
            url=f"{self.base_url}/t/{slug}/{topic_id}",
            author=self._author(item),
            posted_at=posted_at,
            summary=summary,
            tags=self._tags(item),
        )

    def score(self, item: dict) -> float:
        score = (item.get("reply_count") or 0) * 0.1
        score += (item.get("like_count") or 0) * 0.2
        score += (item.get("views") or 0) * 0.001

        created_at = parse_timestamp(item.get("created_at"))
        if created_at is not None:
            score += max(10 - hours_between(created_at, self._clock()), 0) * 0.5

        score += self._unanswered_bonus(item)
        if item.get("pinned"):
            score += 2.0

        tags = set(item.get("tags") or [])
        score += len(tags & set(self._config.priority_tags)) * 1.0
        return score

    def _unanswered_bonus(self, item: dict) -> float:
        return 0.0

    @staticmethod
    def _author(item: dict) -> str:
        if item.get("last_poster_username"):
            return item["last_poster_username"]
        posters = item.get("posters") or []
        if posters and isinstance(posters[0], dict):
            username = (posters[0].get("user") or {}).get("username")
            if username:
                return username
        return "unknown"

    def _tags(self, item: dict) -> tuple[str, ...]:
        tags = [str(t) for t in item.get("tags") or [] if t]
        category_id = item.get("category_id")
        if category_id is not None and self._config.include_category_as_tag:
            category = self._category_names().get(category_id)
            if category:
                tags.append(category)
        return tuple(tags)

    def _category_names(self) -> dict[int, str]:
        """Category id to name map, fetched once per run."""
        if self._categories is not None:
            return self._categories
        self._categories = {}
        try:
            data = self._fetcher.get_json(
                f"{self.base_url}/categories.json", headers=self._headers(),
            )
        except IngestionError as exc:
            logger.warning("Failed to fetch categories for %s: %s", self.source.name, exc)
            return self._categories
        if not isinstance(data, dict):
            return self._categories
        categories = (data.get("category_list") or {}).get("categories") or []
        for category in categories:
            if isinstance(category, dict) and category.get("id") is not None:
                self._categories[category["id"]] = category.get("name") or ""
        return self._categories

    def _full_content(self, topic_id: int, excerpt: str) -> str:
        """First post body when it is longer than the listing excerpt."""
        try:
            details = self._fetcher.get_json(
                f"{self.base_url}/t/{topic_id}.json", headers=self._headers(),
            )
        except IngestionError as exc:
            logger.warning("Failed to fetch topic %s details: %s", topic_id, exc)
            return excerpt

        if not isinstance(details, dict):
            return excerpt
        posts = (details.get("post_stream") or {}).get("posts") or []
        if not posts:
            return excerpt
        content = strip_html(posts[0].get("cooked") or "")
        if len(content) > len(excerpt):
            return truncate_text(content, _FULL_CONTENT_LENGTH)
        return excerpt


class PyTorchDiscourseAdapter(DiscourseAdapter):
    """PyTorch forums: unanswered questions get a boost."""

    @property
    def name(self) -> str:
        return "pytorch"

    def _unanswered_bonus(self, item: dict) -> float:
        if item.get("reply_count") == 0 and "?" in (item.get("title") or ""):
            return 5.0
        return 0.0
