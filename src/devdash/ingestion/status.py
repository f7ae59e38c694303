"""Source status as a tagged value, formatted to legacy strings at the edge.

The front end colours sources by these exact strings, so the vocabulary is
fixed: ``refreshing...``, ``ok``, ``ok (N new)``, ``error: <message>``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

_OK_NEW_RE = re.compile(r"^ok \((\d+) new(?: items)?\)$")
_ERROR_PREFIX = "error: "


class StatusKind(str, Enum):
    REFRESHING = "refreshing"
    OK = "ok"
    ERROR = "error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SourceStatus:
    kind: StatusKind
    new_count: int = 0
    message: str = ""

    @classmethod
    def refreshing(cls) -> SourceStatus:
        return cls(StatusKind.REFRESHING)

    @classmethod
    def ok(cls, new_count: int = 0) -> SourceStatus:
        return cls(StatusKind.OK, new_count=new_count)

    @classmethod
    def error(cls, message: str) -> SourceStatus:
        return cls(StatusKind.ERROR, message=message)

    def format(self) -> str:
        if self.kind is StatusKind.REFRESHING:
            return "refreshing..."
        if self.kind is StatusKind.OK:
            return f"ok ({self.new_count} new)" if self.new_count > 0 else "ok"
        if self.kind is StatusKind.ERROR:
            return f"{_ERROR_PREFIX}{self.message}"
        return self.message

    __str__ = format

    @classmethod
    def parse(cls, text: str | None) -> SourceStatus:
        """Read a stored status string back into a tagged value.

        Also accepts the older ``ok (N new items)`` spelling.
        """
        if not text:
            return cls(StatusKind.UNKNOWN)
        if text == "refreshing...":
            return cls.refreshing()
        if text == "ok":
            return cls.ok()
        match = _OK_NEW_RE.match(text)
        if match:
            return cls.ok(int(match.group(1)))
        if text.startswith(_ERROR_PREFIX):
            return cls.error(text[len(_ERROR_PREFIX):])
        return cls(StatusKind.UNKNOWN, message=text)
