"""Parsing of the per-source JSON config blob and typed-field coercion."""

from __future__ import annotations

import json
import logging
import re

from devdash.ingestion.errors import ConfigParseError

logger = logging.getLogger(__name__)

_CONFIG_PREFIX_RE = re.compile(r"^Config:\s*")
_NEWLINES_RE = re.compile(r"\r\n|\r|\n")


def _parse_strict(raw: str) -> dict:
    cleaned = _CONFIG_PREFIX_RE.sub("", raw.strip())
    cleaned = _NEWLINES_RE.sub("", cleaned).strip()
    if not cleaned:
        return {}
    try:
        data = json.loads(cleaned)
    except ValueError as exc:
        raise ConfigParseError(str(exc)) from exc
    if not isinstance(data, dict):
        raise ConfigParseError(f"expected a JSON object, got {type(data).__name__}")
    return data


def parse_config_blob(raw: str | None, source_name: str = "") -> dict:
    """Parse a source's raw config text into a dict.

    Tolerates surrounding whitespace, embedded newlines, and an accidental
    leading ``Config:`` label. Anything unparseable degrades to ``{}`` with
    a warning; this function never raises.
    """
    if raw is None or not raw.strip():
        return {}
    try:
        return _parse_strict(raw)
    except ConfigParseError as exc:
        logger.warning(
            "Invalid JSON config for source %s: %s. Config: %r", source_name, exc, raw,
        )
        return {}


def str_list(value: object, lower: bool = False) -> tuple[str, ...]:
    """Coerce a config value into a tuple of non-empty strings.

    Accepts a list or a comma-separated string; anything else yields ().
    """
    if isinstance(value, str):
        parts = value.split(",")
    elif isinstance(value, (list, tuple)):
        parts = [str(v) for v in value if v is not None]
    else:
        return ()
    out = [p.strip() for p in parts if p.strip()]
    if lower:
        out = [p.lower() for p in out]
    return tuple(out)


def int_value(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def float_value(value: object, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def str_value(value: object, default: str = "") -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def bool_value(value: object) -> bool:
    """Only a literal JSON ``true`` enables a flag."""
    return value is True
