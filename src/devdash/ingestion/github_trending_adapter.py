"""GitHub Trending source adapter — approximates trending via the Search API.

GitHub has no trending endpoint, so each time window issues three search
queries (new repos gaining stars, recently pushed repos, established repos
with recent activity), merges them by repo id, and ranks by a heuristic
trending score.

The queries run one after another on the shared fetcher. A response showing
the search rate limit nearly spent stops the remaining queries, which only
works when they are ordered.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta

from devdash.ingestion.adapter import SourceAdapter
from devdash.ingestion.errors import UpstreamFormatError, UpstreamTransportError
from devdash.ingestion.github_adapter import github_headers
from devdash.ingestion.models import PostAttributes, hours_between, parse_timestamp
from devdash.ingestion.source_config import str_list, str_value

logger = logging.getLogger(__name__)

_GITHUB_SEARCH_URL = "https://api.github.com/search/repositories"
_PER_QUERY = 15
_MAX_RESULTS = 30

VALID_WINDOWS = ("daily", "weekly", "monthly")

_HELPFUL_TOPICS = frozenset({
    "beginner-friendly", "good-first-issues", "hacktoberfest", "awesome", "tutorial",
})

# (days back, multiplier) for the creation-age bonus, per window
_AGE_BONUS = {
    "daily": (7, 3.0),
    "weekly": (30, 1.0),
    "monthly": (90, 0.5),
}


@dataclass(frozen=True)
class TrendingConfig:
    token: str = ""
    since: str = "daily"
    language: str = ""
    preferred_languages: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, config: dict) -> TrendingConfig:
        preferred = str_list(config.get("preferred_languages"))
        since = str_value(config.get("since"), "daily").lower()
        return cls(
            token=str_value(config.get("token")),
            since=since if since in VALID_WINDOWS else "daily",
            language=str_value(config.get("language"), preferred[0] if preferred else ""),
            preferred_languages=preferred,
        )


def build_trending_queries(since: str, language: str, today: date) -> list[tuple[str, str]]:
    """Return ``(query, sort)`` pairs for one time window."""
    lang = f" language:{language}" if language else ""

    def ago(days: int) -> str:
        return (today - timedelta(days=days)).strftime("%Y-%m-%d")

    if since == "weekly":
        return [
            (f"created:>{ago(7)} stars:>5{lang}", "stars"),
            (f"pushed:>{ago(7)} stars:>100{lang}", "updated"),
            (f"pushed:>{ago(30)} stars:>1000{lang}", "stars"),
        ]
    if since == "monthly":
        return [
            (f"created:>{ago(30)} stars:>3{lang}", "stars"),
            (f"pushed:>{ago(30)} stars:>50{lang}", "updated"),
            (f"pushed:>{ago(90)} stars:>500{lang}", "stars"),
        ]
    return [
        (f"created:>{ago(1)} stars:>1{lang}", "stars"),
        (f"pushed:>{ago(1)} stars:>50{lang}", "updated"),
        (f"pushed:>{ago(7)} stars:>200{lang}", "stars"),
    ]


class GitHubTrendingAPIAdapter(SourceAdapter):
    """Adapter for GitHub trending repositories via the Search API."""

    @property
    def name(self) -> str:
        return "github_trending"

    def configure(self, config: dict) -> None:
        self._config = TrendingConfig.from_dict(config)

    def fetch_items(self) -> list[dict]:
        queries = build_trending_queries(
            self._config.since, self._config.language, self._clock().date(),
        )
        headers = github_headers(self._config.token)

        repos_by_id: dict[int, dict] = {}
        last_error: Exception | None = None
        succeeded = 0

        for query, sort in queries:
            try:
                resp = self._fetcher.get(
                    _GITHUB_SEARCH_URL,
                    params={"q": query, "sort": sort, "order": "desc", "per_page": _PER_QUERY},
                    headers=headers,
                )
                data = resp.json()
            except UpstreamTransportError as exc:
                logger.warning("Trending query failed: %s (%s)", query, exc)
                last_error = exc
                continue
            except ValueError:
                data = None
            if not isinstance(data, dict):
                logger.warning("Trending query returned an unexpected body: %s", query)
                last_error = UpstreamFormatError("Invalid JSON response")
                continue

            succeeded += 1
            for repo in data.get("items") or []:
                repo_id = repo.get("id") if isinstance(repo, dict) else None
                if repo_id is not None and repo_id not in repos_by_id:
                    repos_by_id[repo_id] = repo

            remaining = resp.headers.get("X-RateLimit-Remaining")
            if remaining is not None and remaining.isdigit() and int(remaining) <= 1:
                logger.warning(
                    "GitHub API rate limit nearly exhausted (%s remaining), stopping",
                    remaining,
                )
                break

        if succeeded == 0 and last_error is not None:
            raise last_error

        ranked = sorted(repos_by_id.values(), key=self.score, reverse=True)
        logger.info(
            "Found %d trending repositories (%s) for %s",
            len(ranked), self._config.since, self.source.name,
        )
        return ranked[:_MAX_RESULTS]

    def to_post_attributes(self, item: dict) -> tuple[str, PostAttributes]:
        full_name = item.get("full_name") or ""
        description = (item.get("description") or "").strip()
        title = f"{full_name} - {description}" if description else full_name
        return str(item["id"]), PostAttributes(
            title=title,
            url=item.get("html_url") or "",
            author=(item.get("owner") or {}).get("login") or "unknown",
            posted_at=parse_timestamp(item.get("created_at")),
            summary=self._summary(item),
            tags=self._tags(item),
        )

    def score(self, item: dict) -> float:
        """Trending score: popularity, freshness, engagement, and preferences."""
        now = self._clock()
        stars = item.get("stargazers_count") or 0
        score = math.log10(max(stars, 1)) * 10

        created_at = parse_timestamp(item.get("created_at"))
        if created_at is not None:
            days_old = hours_between(created_at, now) / 24
            horizon, multiplier = _AGE_BONUS[self._config.since]
            if days_old <= horizon:
                score += max(horizon - days_old, 0) * multiplier

        forks = item.get("forks_count") or 0
        if stars > 0:
            fork_ratio = forks / stars
            if 0.05 <= fork_ratio <= 0.3:
                score += fork_ratio * 10

        if item.get("language") in self._config.preferred_languages:
            score += 15

        topics = set(item.get("topics") or [])
        score += len(topics & _HELPFUL_TOPICS) * 3

        if len(item.get("description") or "") > 20:
            score += 5

        pushed_at = parse_timestamp(item.get("pushed_at"))
        if pushed_at is not None:
            days_since_push = hours_between(pushed_at, now) / 24
            if days_since_push <= 30:
                score += max(30 - days_since_push, 0) * 0.1

        return score

    @staticmethod
    def _summary(repo: dict) -> str:
        parts: list[str] = []
        if repo.get("description"):
            parts.append(repo["description"].strip())
        if (repo.get("stargazers_count") or 0) > 0:
            parts.append(f"{repo['stargazers_count']} stars")
        if (repo.get("forks_count") or 0) > 0:
            parts.append(f"{repo['forks_count']} forks")
        if repo.get("language"):
            parts.append(repo["language"])
        return " | ".join(parts)

    def _tags(self, repo: dict) -> tuple[str, ...]:
        tags: list[str] = []
        if repo.get("language"):
            tags.append(repo["language"])
        tags.extend(t for t in repo.get("topics") or [] if t)
        tags.append("trending")
        created_at = parse_timestamp(repo.get("created_at"))
        if created_at is not None and hours_between(created_at, self._clock()) < 7 * 24:
            tags.append("new-repo")
        if (repo.get("stargazers_count") or 0) > 100:
            tags.append("popular")
        license_info = repo.get("license")
        if isinstance(license_info, dict) and license_info.get("key"):
            tags.append(f"license:{license_info['key']}")
        return tuple(dict.fromkeys(tags))
