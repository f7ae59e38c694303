"""RSS/Atom feed source adapter."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import feedparser

from devdash.ingestion.adapter import (
    SourceAdapter,
    count_keyword_matches,
    matches_any_keyword,
    strip_html,
    truncate_text,
)
from devdash.ingestion.errors import InvalidSourceError, UpstreamFormatError
from devdash.ingestion.models import PostAttributes, hours_between, parse_timestamp
from devdash.ingestion.source_config import int_value, str_list

logger = logging.getLogger(__name__)

_TITLE_LENGTH = 200
_SUMMARY_LENGTH = 500
_AUTHOR_LENGTH = 100
_MAX_TAGS = 10


def _parse_pub_date(entry: dict) -> datetime | None:
    """Extract the publication date from a feed entry, if it has one."""
    raw = entry.get("published") or entry.get("updated")
    if raw:
        try:
            return parsedate_to_datetime(raw).astimezone(timezone.utc)
        except (ValueError, TypeError):
            parsed = parse_timestamp(raw)
            if parsed is not None:
                return parsed
    # feedparser sometimes provides a parsed tuple
    parsed_tuple = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed_tuple:
        try:
            return datetime(*parsed_tuple[:6], tzinfo=timezone.utc)
        except (ValueError, TypeError):
            pass
    return None


def _raw_summary(entry: dict) -> str:
    """Return the best available body text, still HTML."""
    if entry.get("summary"):
        return entry["summary"]
    if entry.get("content"):
        # feedparser puts content:encoded in entry.content[0].value
        return entry["content"][0].get("value", "")
    return entry.get("description") or ""


def external_id_for(entry: dict) -> str:
    """Entry id, else link, else an MD5 of title and link."""
    if entry.get("id"):
        return str(entry["id"])
    if entry.get("link"):
        return str(entry["link"])
    seed = f"{entry.get('title') or ''}{entry.get('link') or ''}"
    return hashlib.md5(seed.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class RSSConfig:
    max_items: int = 20
    keywords: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, config: dict) -> RSSConfig:
        return cls(
            max_items=int_value(config.get("max_items"), 20),
            keywords=str_list(config.get("keywords")),
        )


class RSSAdapter(SourceAdapter):
    """Adapter for RSS and Atom feeds."""

    @property
    def name(self) -> str:
        return "rss"

    def configure(self, config: dict) -> None:
        self._config = RSSConfig.from_dict(config)

    def fetch_items(self) -> list[dict]:
        if not self.source.url:
            raise InvalidSourceError("missing feed URL")

        logger.info("Fetching RSS feed from %s", self.source.url)
        body = self._fetcher.get_text(self.source.url)
        feed = feedparser.parse(body)
        if feed.bozo and not feed.entries:
            logger.warning(
                "Unparseable feed for %s: %s", self.source.name, feed.get("bozo_exception"),
            )
            raise UpstreamFormatError("Invalid RSS feed format")

        items = []
        for entry in feed.entries[: self._config.max_items]:
            text = f"{entry.get('title') or ''} {strip_html(_raw_summary(entry))}"
            if not matches_any_keyword(text, self._config.keywords):
                continue
            items.append(entry)

        logger.info("Feed %s: %d matching entries", self.source.name, len(items))
        return items

    def to_post_attributes(self, item: dict) -> tuple[str, PostAttributes]:
        title = strip_html(item.get("title") or "")
        author = (item.get("author") or item.get("itunes_author") or "Unknown").strip()
        published = _parse_pub_date(item)
        return external_id_for(item), PostAttributes(
            title=truncate_text(title, _TITLE_LENGTH) if title else "Untitled",
            url=item.get("link") or "",
            author=truncate_text(author, _AUTHOR_LENGTH) or "Unknown",
            posted_at=published or self._clock(),
            summary=truncate_text(strip_html(_raw_summary(item)), _SUMMARY_LENGTH),
            tags=self._tags(item),
            posted_at_estimated=published is None,
        )

    def score(self, item: dict) -> float:
        score = 0.0
        published = _parse_pub_date(item)
        if published is not None:
            score += max(10 - hours_between(published, self._clock()), 0) * 0.5

        summary = item.get("summary") or ""
        text = f"{item.get('title') or ''} {summary}".lower()
        score += count_keyword_matches(text) * 0.5

        if len(summary) > 100:
            score += 1.0
        if "tutorial" in text or "guide" in text or "how to" in text:
            score += 2.0
        if "release" in text or "version" in text or "update" in text:
            score += 1.5
        return score

    @staticmethod
    def _tags(entry: dict) -> tuple[str, ...]:
        tags: list[str] = []
        for category in entry.get("tags") or []:
            term = (category.get("term") or "").strip()
            if term:
                tags.append(term)
        keywords = entry.get("itunes_keywords") or ""
        tags.extend(k.strip() for k in keywords.split(",") if k.strip())
        return tuple(dict.fromkeys(tags))[:_MAX_TAGS]
