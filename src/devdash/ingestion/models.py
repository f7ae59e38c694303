"""Domain records shared by adapters, the reconciler, and the stores."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from devdash.ingestion.errors import ValidationError
from devdash.ingestion.source_config import parse_config_blob

_HTTP_URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)

VALID_SOURCE_TYPES = frozenset({
    "github", "github_trending", "reddit", "rss", "discourse",
})


class PostStatus(str, Enum):
    UNREAD = "unread"
    READ = "read"
    IGNORED = "ignored"
    RESPONDED = "responded"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string or a unix epoch into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600.0


@dataclass(frozen=True)
class Source:
    """A configured upstream feed."""

    id: int
    name: str
    source_type: str
    url: str | None = None
    config: str | None = None
    active: bool = True
    auto_fetch_enabled: bool = True
    last_fetched_at: datetime | None = None
    status: str | None = None

    def config_hash(self) -> dict:
        """Return the parsed config, or ``{}`` when it is missing or malformed."""
        return parse_config_blob(self.config, self.name)


@dataclass(frozen=True)
class PostAttributes:
    """Candidate values an adapter produces for one upstream item."""

    title: str
    url: str
    author: str
    posted_at: datetime | None
    summary: str = ""
    tags: tuple[str, ...] = ()
    priority_score: float = 0.0
    # Set when the upstream item carries no date and posted_at is the fetch
    # time; a stored post then keeps the posted_at it was created with.
    posted_at_estimated: bool = False

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if not self.title or not self.title.strip():
            errors.append("title is required and must be non-empty")
        if not self.url or not _HTTP_URL_RE.match(self.url):
            errors.append(f"url '{self.url}' is not a valid http(s) URL")
        if not self.author or not self.author.strip():
            errors.append("author is required and must be non-empty")
        if self.posted_at is None:
            errors.append("posted_at is required")
        return errors

    def ensure_valid(self) -> None:
        errors = self.validation_errors()
        if errors:
            raise ValidationError(f"Invalid post attributes: {'; '.join(errors)}")


@dataclass(frozen=True)
class Post:
    """A normalized content item as stored."""

    id: int
    source: str
    external_id: str
    title: str
    url: str
    author: str
    posted_at: datetime
    summary: str
    status: PostStatus
    priority_score: float
    created_at: datetime
    updated_at: datetime
    tags: tuple[str, ...] = field(default_factory=tuple)
