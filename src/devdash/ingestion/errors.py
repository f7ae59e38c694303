"""Exception hierarchy for the ingestion pipeline."""

from __future__ import annotations


class IngestionError(Exception):
    """Base class for all ingestion failures."""


class ConfigParseError(IngestionError):
    """A source's config blob could not be parsed. Never fatal."""


class UpstreamTransportError(IngestionError):
    """Network failure, timeout, or non-2xx response from an upstream."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamFormatError(IngestionError):
    """Upstream responded but the body could not be parsed."""


class UniquenessConflict(IngestionError):
    """A post with the same (source, external_id) already exists."""


class ValidationError(IngestionError):
    """Candidate post attributes are missing required fields."""


class InvalidSourceError(IngestionError):
    """The source row itself cannot be ingested (bad URL, unknown type)."""
