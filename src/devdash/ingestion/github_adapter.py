"""GitHub issues source adapter — open issues of one repository via the REST API."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from devdash.ingestion.adapter import SourceAdapter, truncate_text
from devdash.ingestion.errors import (
    InvalidSourceError,
    UpstreamFormatError,
    UpstreamTransportError,
)
from devdash.ingestion.models import PostAttributes, hours_between, parse_timestamp
from devdash.ingestion.source_config import int_value, str_list, str_value

logger = logging.getLogger(__name__)

_GITHUB_API_URL = "https://api.github.com"
_ACCEPT = "application/vnd.github.v3+json"
_SUMMARY_LENGTH = 300

_HELPFUL_LABELS = frozenset({
    "good first issue", "help wanted", "beginner friendly", "easy", "starter",
})

_ERROR_HINTS = {
    403: "Rate limit exceeded or authentication required",
    404: "Repository not found or access denied",
    422: "Invalid repository or parameters",
}


def parse_repository_url(url: str | None) -> tuple[str, str] | None:
    """Extract ``(owner, repo)`` from a github.com URL, or None."""
    if not url or "github.com" not in url:
        return None
    parts = [p for p in urlparse(url).path.split("/") if p]
    if len(parts) < 2:
        return None
    owner, repo = parts[0], re.sub(r"\.git$", "", parts[1])
    if not owner or not repo:
        return None
    return owner, repo


def github_headers(token: str) -> dict[str, str]:
    headers = {"Accept": _ACCEPT}
    if token:
        headers["Authorization"] = f"token {token}"
    return headers


@dataclass(frozen=True)
class GitHubConfig:
    token: str = ""
    labels: tuple[str, ...] = ()
    priority_labels: tuple[str, ...] = ()
    per_page: int = 30

    @classmethod
    def from_dict(cls, config: dict) -> GitHubConfig:
        return cls(
            token=str_value(config.get("token")),
            labels=str_list(config.get("labels")),
            priority_labels=str_list(config.get("priority_labels"), lower=True),
            per_page=int_value(config.get("per_page"), 30),
        )


def _label_names(issue: dict) -> list[str]:
    return [
        label["name"]
        for label in issue.get("labels") or []
        if isinstance(label, dict) and label.get("name")
    ]


def _reaction_total(reactions: dict | None) -> int:
    if not reactions:
        return 0
    return sum(
        value for key, value in reactions.items()
        if key != "url" and isinstance(value, int) and not isinstance(value, bool)
    )


class GitHubAdapter(SourceAdapter):
    """Adapter for open issues of a single GitHub repository."""

    @property
    def name(self) -> str:
        return "github"

    def configure(self, config: dict) -> None:
        self._config = GitHubConfig.from_dict(config)

    def fetch_items(self) -> list[dict]:
        repo = parse_repository_url(self.source.url)
        if repo is None:
            raise InvalidSourceError("invalid GitHub repository URL")
        owner, name = repo

        params: dict[str, str | int] = {
            "state": "open",
            "per_page": self._config.per_page,
            "sort": "updated",
            "direction": "desc",
        }
        if self._config.labels:
            params["labels"] = ",".join(self._config.labels)

        try:
            issues = self._fetcher.get_json(
                f"{_GITHUB_API_URL}/repos/{owner}/{name}/issues",
                params=params,
                headers=github_headers(self._config.token),
            )
        except UpstreamTransportError as exc:
            hint = _ERROR_HINTS.get(exc.status_code or 0)
            if hint is None:
                raise
            raise UpstreamTransportError(
                f"{exc} - {hint}", status_code=exc.status_code,
            ) from exc

        if not isinstance(issues, list):
            raise UpstreamFormatError("Unexpected GitHub issues payload")

        # The issues endpoint also lists pull requests
        items = [i for i in issues if isinstance(i, dict) and not i.get("pull_request")]
        logger.info("Fetched %d issues from %s/%s", len(items), owner, name)
        return items

    def to_post_attributes(self, item: dict) -> tuple[str, PostAttributes]:
        return str(item["number"]), PostAttributes(
            title=(item.get("title") or "").strip(),
            url=item.get("html_url") or "",
            author=(item.get("user") or {}).get("login") or "unknown",
            posted_at=parse_timestamp(item.get("created_at")),
            summary=truncate_text((item.get("body") or "").strip(), _SUMMARY_LENGTH),
            tags=tuple(_label_names(item)),
        )

    def score(self, item: dict) -> float:
        now = self._clock()
        labels = {name.lower() for name in _label_names(item)}

        score = (item.get("comments") or 0) * 0.5
        score += _reaction_total(item.get("reactions")) * 0.3

        if labels & _HELPFUL_LABELS:
            score += 5.0
        if "bug" in labels:
            score += 3.0
        if "enhancement" in labels or "feature" in labels:
            score += 2.0

        created_at = parse_timestamp(item.get("created_at"))
        if created_at is not None:
            score += max(10 - hours_between(created_at, now), 0) * 0.3

        updated_raw = item.get("updated_at")
        if updated_raw and updated_raw != item.get("created_at"):
            updated_at = parse_timestamp(updated_raw)
            if updated_at is not None:
                score += max(5 - hours_between(updated_at, now), 0) * 0.2

        score += len(labels & set(self._config.priority_labels)) * 2.0
        return score
