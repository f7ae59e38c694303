"""Adapter registry — maps source types to adapter classes."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Callable
from urllib.parse import urlparse

from devdash.ingestion.errors import InvalidSourceError
from devdash.ingestion.models import Source, utcnow

if TYPE_CHECKING:
    from devdash.ingestion.adapter import SourceAdapter
    from devdash.ingestion.http import HttpFetcher

_REGISTRY: dict[str, type[SourceAdapter]] = {}

# Variant sniffers per source type, checked in order before the default class.
_VARIANTS: dict[str, list[tuple[Callable[[Source], bool], type[SourceAdapter]]]] = {}


def register_adapter(type_name: str, cls: type[SourceAdapter]) -> None:
    """Register the default adapter class for a given source type."""
    _REGISTRY[type_name] = cls


def register_variant(
    type_name: str, matches: Callable[[Source], bool], cls: type[SourceAdapter],
) -> None:
    """Register an adapter class picked instead of the default when ``matches``."""
    _VARIANTS.setdefault(type_name, []).append((matches, cls))


def get_adapter_class(type_name: str) -> type[SourceAdapter] | None:
    """Look up the default adapter class by type name. Returns None if not found."""
    return _REGISTRY.get(type_name)


def registered_types() -> list[str]:
    """Return a sorted list of all registered source type names."""
    return sorted(_REGISTRY)


def resolve_adapter_class(source: Source) -> type[SourceAdapter]:
    """Pick the adapter class for a source, including URL/name sniffing."""
    for matches, cls in _VARIANTS.get(source.source_type, []):
        if matches(source):
            return cls
    cls = _REGISTRY.get(source.source_type)
    if cls is None:
        raise InvalidSourceError(f"unknown source type '{source.source_type}'")
    return cls


def build_adapter(
    source: Source,
    fetcher: HttpFetcher,
    clock: Callable[[], datetime] = utcnow,
) -> SourceAdapter:
    return resolve_adapter_class(source)(source, fetcher, clock)


def url_host(url: str | None) -> str:
    return (urlparse(url or "").hostname or "").lower()
