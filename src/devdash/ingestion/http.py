"""Outbound HTTP for adapters — bounded timeouts, redirects, no retries.

Transport failures are translated into ``UpstreamTransportError`` and
undecodable JSON into ``UpstreamFormatError`` so the ingestion runner can
turn either into a source status string.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from devdash.ingestion.errors import UpstreamFormatError, UpstreamTransportError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "DevDashboard/1.0"
DEFAULT_TIMEOUT = 20.0
MAX_REDIRECTS = 5


class HttpFetcher:
    """Thin wrapper around an ``httpx.Client`` shared by one ingestion run."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            headers={"User-Agent": user_agent},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpFetcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """GET ``url`` and return the response, raising on any non-2xx."""
        try:
            resp = self._client.get(url, params=params, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            raise UpstreamTransportError(f"HTTP {code}", status_code=code) from exc
        except httpx.TooManyRedirects as exc:
            raise UpstreamTransportError("Too many redirects") from exc
        except httpx.TimeoutException as exc:
            raise UpstreamTransportError("Request timeout") from exc
        except httpx.HTTPError as exc:
            raise UpstreamTransportError(str(exc) or exc.__class__.__name__) from exc
        return resp

    def get_text(self, url: str, **kwargs: Any) -> str:
        return self.get(url, **kwargs).text

    def get_json(self, url: str, **kwargs: Any) -> Any:
        resp = self.get(url, **kwargs)
        try:
            return resp.json()
        except ValueError as exc:
            logger.warning("Invalid JSON from %s", url)
            raise UpstreamFormatError("Invalid JSON response") from exc
