"""Source adapter interface and helpers shared by the adapter variants."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import datetime
from html import unescape
from typing import Any, Callable

from devdash.ingestion.http import HttpFetcher
from devdash.ingestion.models import PostAttributes, Source, utcnow

RawItem = Any

_HTML_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")

DEVELOPER_KEYWORDS = (
    "api", "framework", "library", "tutorial", "guide", "developer", "programming",
    "code", "software", "development", "javascript", "python", "ruby", "rails",
    "react", "vue", "angular", "nodejs", "github", "opensource", "release",
)


def strip_html(text: str) -> str:
    """Remove HTML tags and unescape entities."""
    return unescape(_HTML_TAG_RE.sub("", text or "")).strip()


def squash_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate_text(text: str, length: int, omission: str = "...") -> str:
    """Cut ``text`` so the result, omission included, fits in ``length``."""
    if not text or len(text) <= length:
        return text or ""
    return text[: max(length - len(omission), 0)].rstrip() + omission


def count_keyword_matches(text: str, keywords: tuple[str, ...] = DEVELOPER_KEYWORDS) -> int:
    lowered = text.lower()
    return sum(1 for keyword in keywords if keyword in lowered)


def matches_any_keyword(text: str, keywords: tuple[str, ...]) -> bool:
    """Case-insensitive substring match; an empty keyword list matches everything."""
    if not keywords:
        return True
    lowered = text.lower()
    return any(keyword.lower() in lowered for keyword in keywords)


class SourceAdapter(ABC):
    """Abstract base class for source adapters.

    An adapter is built for one Source per ingestion run. It fetches raw
    upstream items and maps each to a stable external id plus candidate
    post attributes. Scoring is a separate step so the runner can apply it
    uniformly. Adapters raise on failure; they never set source status.
    """

    def __init__(
        self,
        source: Source,
        fetcher: HttpFetcher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._source = source
        self._fetcher = fetcher
        self._clock = clock
        self.configure(source.config_hash())

    @property
    def source(self) -> Source:
        return self._source

    @property
    @abstractmethod
    def name(self) -> str:
        """Short adapter name used in logs."""

    @abstractmethod
    def configure(self, config: dict) -> None:
        """Turn the raw config dict into the adapter's typed config."""

    @abstractmethod
    def fetch_items(self) -> list[RawItem]:
        """Fetch raw items from the upstream. Raises on source-level failure."""

    @abstractmethod
    def to_post_attributes(self, item: RawItem) -> tuple[str, PostAttributes]:
        """Map one raw item to ``(external_id, attributes)``."""

    @abstractmethod
    def score(self, item: RawItem) -> float:
        """Heuristic desirability of one raw item; higher is better."""
