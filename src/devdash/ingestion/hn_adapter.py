"""Hacker News source adapter — stories from the Firebase story lists."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from devdash.ingestion.adapter import (
    SourceAdapter,
    count_keyword_matches,
    matches_any_keyword,
    strip_html,
    truncate_text,
)
from devdash.ingestion.errors import IngestionError
from devdash.ingestion.models import PostAttributes, hours_between
from devdash.ingestion.source_config import int_value, str_list

logger = logging.getLogger(__name__)

_HN_API_URL = "https://hacker-news.firebaseio.com/v0"
_HN_ITEM_PAGE = "https://news.ycombinator.com/item?id={}"
_SUMMARY_LENGTH = 300

_STORY_LISTS = {
    "top": "topstories",
    "new": "newstories",
    "ask": "askstories",
    "show": "showstories",
}

_TYPE_BONUS = {"ask": 3.0, "show": 2.5, "top": 1.0}

_LANGUAGE_TAGS = ("javascript", "python", "ruby", "java", "golang", "rust", "php", "swift")
_FRAMEWORK_TAGS = ("react", "vue", "angular", "rails", "django", "express", "spring")


@dataclass(frozen=True)
class HNStory:
    """A story payload plus the list it was found on."""

    data: dict
    story_type: str

    @property
    def id(self) -> int:
        return self.data["id"]

    @property
    def title(self) -> str:
        return self.data.get("title") or ""


@dataclass(frozen=True)
class HNConfig:
    story_types: tuple[str, ...] = ("top",)
    min_score: int = 10
    max_items: int = 30
    keywords: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, config: dict) -> HNConfig:
        return cls(
            story_types=str_list(config.get("story_types"), lower=True) or ("top",),
            min_score=int_value(config.get("min_score"), 10),
            max_items=int_value(config.get("max_items"), 30),
            keywords=str_list(config.get("keywords")),
        )

    @property
    def per_type(self) -> int:
        return max(self.max_items // len(self.story_types), 1)


class HackerNewsAdapter(SourceAdapter):
    """Adapter for Hacker News top/new/ask/show story lists."""

    @property
    def name(self) -> str:
        return "hackernews"

    def configure(self, config: dict) -> None:
        self._config = HNConfig.from_dict(config)

    def fetch_items(self) -> list[HNStory]:
        stories: list[HNStory] = []
        seen: set[int] = set()
        for story_type in self._config.story_types:
            stories.extend(self._fetch_list(story_type, seen))
        logger.info(
            "Fetched %d stories from Hacker News (%s)",
            len(stories), ", ".join(self._config.story_types),
        )
        return stories

    def _fetch_list(self, story_type: str, seen: set[int]) -> list[HNStory]:
        list_name = _STORY_LISTS.get(story_type, "topstories")
        story_ids = self._fetcher.get_json(f"{_HN_API_URL}/{list_name}.json")
        if not story_ids:
            return []

        limit = self._config.per_type
        stories: list[HNStory] = []
        for story_id in story_ids[: limit * 2]:
            if len(stories) >= limit:
                break
            if story_id in seen:
                continue
            try:
                data = self._fetcher.get_json(f"{_HN_API_URL}/item/{story_id}.json")
            except IngestionError as exc:
                logger.warning("Failed to fetch HN item %s: %s", story_id, exc)
                continue

            if not isinstance(data, dict) or data.get("type") != "story":
                continue
            if (data.get("score") or 0) < self._config.min_score:
                continue
            text = f"{data.get('title') or ''} {data.get('text') or ''}"
            if not matches_any_keyword(text, self._config.keywords):
                continue

            seen.add(story_id)
            stories.append(HNStory(data=data, story_type=story_type))
        return stories

    def to_post_attributes(self, item: HNStory) -> tuple[str, PostAttributes]:
        data = item.data
        posted_at = None
        if data.get("time"):
            posted_at = datetime.fromtimestamp(data["time"], tz=timezone.utc)
        return str(item.id), PostAttributes(
            title=item.title.strip(),
            url=data.get("url") or _HN_ITEM_PAGE.format(item.id),
            author=data.get("by") or "unknown",
            posted_at=posted_at,
            summary=self._summary(data),
            tags=self._tags(item),
        )

    def score(self, item: HNStory) -> float:
        data = item.data
        score = (data.get("score") or 0) * 0.1
        score += (data.get("descendants") or 0) * 0.05

        if data.get("time"):
            posted_at = datetime.fromtimestamp(data["time"], tz=timezone.utc)
            score += max(10 - hours_between(posted_at, self._clock()), 0) * 0.3

        score += _TYPE_BONUS.get(item.story_type, 0.0)

        title = item.title.lower()
        score += count_keyword_matches(title) * 0.8
        if "tutorial" in title or "guide" in title:
            score += 2.0
        if "release" in title or "version" in title:
            score += 1.5
        if "opensource" in title or "open source" in title:
            score += 1.0
        return score

    @staticmethod
    def _summary(data: dict) -> str:
        text = strip_html(data.get("text") or "")
        if text:
            return truncate_text(text, _SUMMARY_LENGTH)
        return (
            f"{data.get('title') or ''} "
            f"({data.get('score') or 0} points, {data.get('descendants') or 0} comments)"
        )

    @staticmethod
    def _tags(item: HNStory) -> tuple[str, ...]:
        title = item.title.lower()
        tags = [item.story_type]
        tags.extend(lang for lang in _LANGUAGE_TAGS if lang in title)
        tags.extend(fw for fw in _FRAMEWORK_TAGS if fw in title)
        if title.startswith("ask hn"):
            tags.append("ask")
        if title.startswith("show hn"):
            tags.append("show")
        if "release" in title or "version" in title:
            tags.append("release")
        if "tutorial" in title or "guide" in title:
            tags.append("tutorial")
        return tuple(dict.fromkeys(tags))
