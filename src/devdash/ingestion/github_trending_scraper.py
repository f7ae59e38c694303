"""GitHub Trending scraper adapter — parses github.com/trending HTML."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from devdash.ingestion.adapter import SourceAdapter
from devdash.ingestion.github_trending_adapter import TrendingConfig
from devdash.ingestion.models import PostAttributes

logger = logging.getLogger(__name__)

_TRENDING_URL = "https://github.com/trending"
_STARS_TODAY_RE = re.compile(r"(\d+(?:,\d+)*)\s+stars?\s+today")
_NON_DIGIT_RE = re.compile(r"[^\d]")


@dataclass(frozen=True)
class TrendingRepo:
    """One repository block scraped from the trending page."""

    author: str
    name: str
    description: str = ""
    language: str | None = None
    stars: int = 0
    forks: int = 0
    stars_today: int = 0
    rank: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.author}/{self.name}"

    @property
    def url(self) -> str:
        return f"https://github.com/{self.full_name}"


def parse_number(text: str) -> int:
    """Convert display counts like ``"1,234"`` to ints; junk becomes 0."""
    digits = _NON_DIGIT_RE.sub("", text or "")
    return int(digits) if digits else 0


def _parse_article(article: Tag, position: int) -> TrendingRepo | None:
    link = article.select_one("h2 a")
    if link is None or not link.get("href"):
        return None
    full_name = str(link["href"]).strip().strip("/")
    author, name = full_name.split("/", 1)
    if not author or not name:
        return None

    description_el = article.select_one("p.col-9")
    language_el = article.select_one('span[itemprop="programmingLanguage"]')

    stars = forks = 0
    for stat in article.select("a.Link--muted"):
        svg = stat.find("svg")
        if svg is None:
            continue
        classes = svg.get("class") or []
        if "octicon-star" in classes:
            stars = parse_number(stat.get_text())
        elif "octicon-repo-forked" in classes:
            forks = parse_number(stat.get_text())

    stars_today = 0
    today_el = article.select_one("span.float-sm-right")
    if today_el is not None:
        match = _STARS_TODAY_RE.search(today_el.get_text(" ", strip=True))
        if match:
            stars_today = parse_number(match.group(1))

    raw_rank = article.get("data-position")
    rank = parse_number(str(raw_rank)) if raw_rank else position

    return TrendingRepo(
        author=author,
        name=name,
        description=description_el.get_text(strip=True) if description_el else "",
        language=language_el.get_text(strip=True) if language_el else None,
        stars=stars,
        forks=forks,
        stars_today=stars_today,
        rank=rank,
    )


def parse_trending_page(html: str) -> list[TrendingRepo]:
    """Extract repositories from a trending page; malformed blocks are skipped."""
    soup = BeautifulSoup(html, "html.parser")
    repos: list[TrendingRepo] = []
    for position, article in enumerate(soup.select("article.Box-row"), start=1):
        try:
            repo = _parse_article(article, position)
        except (ValueError, KeyError, AttributeError) as exc:
            logger.warning("Failed to parse trending repository #%d: %s", position, exc)
            continue
        if repo is not None:
            repos.append(repo)
    return repos


class GitHubTrendingScrapeAdapter(SourceAdapter):
    """Adapter that scrapes the public GitHub trending page."""

    @property
    def name(self) -> str:
        return "github_trending_scraper"

    def configure(self, config: dict) -> None:
        self._config = TrendingConfig.from_dict(config)

    def fetch_items(self) -> list[TrendingRepo]:
        params = {"since": self._config.since}
        if self._config.language:
            params["language"] = self._config.language
        html = self._fetcher.get_text(_TRENDING_URL, params=params)
        repos = parse_trending_page(html)
        logger.info("Scraped %d trending repositories for %s", len(repos), self.source.name)
        return repos

    def to_post_attributes(self, item: TrendingRepo) -> tuple[str, PostAttributes]:
        title = f"{item.full_name} - {item.description}" if item.description else item.full_name
        # The page carries no timestamps; pin to the day the repo was seen
        # trending so repeated scrapes within a day do not look like activity.
        seen_on = self._clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return item.full_name, PostAttributes(
            title=title,
            url=item.url,
            author=item.author,
            posted_at=seen_on,
            summary=self._summary(item),
            tags=self._tags(item),
        )

    def score(self, item: TrendingRepo) -> float:
        score = math.log10(max(item.stars, 1)) * 10
        score += item.stars_today * 0.5
        score += math.log10(max(item.forks, 1)) * 5
        if item.language in self._config.preferred_languages:
            score += 20
        score += max(26 - item.rank, 0) * 2
        return score

    @staticmethod
    def _summary(repo: TrendingRepo) -> str:
        parts: list[str] = []
        if repo.description:
            parts.append(repo.description)
        if repo.stars_today > 0:
            parts.append(f"{repo.stars_today} stars today")
        if repo.stars > 0:
            parts.append(f"{repo.stars} total stars")
        if repo.forks > 0:
            parts.append(f"{repo.forks} forks")
        if repo.language:
            parts.append(repo.language)
        return " | ".join(parts)

    @staticmethod
    def _tags(repo: TrendingRepo) -> tuple[str, ...]:
        tags: list[str] = []
        if repo.language:
            tags.append(repo.language)
        tags.append("trending")
        if repo.stars_today >= 100:
            tags.append("hot")
        elif 20 <= repo.stars_today <= 99:
            tags.append("rising")
        if repo.stars > 1000:
            tags.append("popular")
        if 1 <= repo.rank <= 10:
            tags.append("top-10")
        return tuple(dict.fromkeys(tags))
