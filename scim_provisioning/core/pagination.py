"""SCIM list pagination (RFC 7644 Section 3.4.2.4)."""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any

DEFAULT_START_INDEX = 1
DEFAULT_COUNT = 50
MAX_COUNT = 200
# Store offsets never exceed a signed 32-bit INTEGER.
MAX_INDEX = 2**31 - 1


@dataclass(frozen=True)
class Page:
    """1-based request window translated to a store offset/limit."""

    start_index: int
    count: int

    @property
    def offset(self) -> int:
        return min(max(0, self.start_index - 1), MAX_INDEX)

    @property
    def limit(self) -> int:
        return min(max(self.count, 0), MAX_COUNT)


def _to_int(raw: Any, default: int) -> int:
    if raw is None or raw == "" or isinstance(raw, bool):
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def parse_pagination(start_index: Any = None, count: Any = None) -> Page:
    """Build a Page from raw query values; unparseable values use the defaults.

    startIndex is kept as given (not clamped) so it can be echoed back.
    """
    return Page(
        start_index=_to_int(start_index, DEFAULT_START_INDEX),
        count=_to_int(count, DEFAULT_COUNT),
    )
