"""Wrap a compiled FilterSet into a complete trace-search request.

The search itself is performed by an external collaborator implementing
``SearchService``; this module only shapes its input.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, runtime_checkable

from tracequery.errors import ConfigurationError
from tracequery.models import FilterSet

DEFAULT_LOOKBACK = "1h"
DEFAULT_LIMIT = 20
ANY_VALUE = "-"

_LOOKBACK_RE = re.compile(r"^(\d+)([mhdw])$")
_LOOKBACK_UNITS = {
    "m": "minutes",
    "h": "hours",
    "d": "days",
    "w": "weeks",
}


@runtime_checkable
class SearchService(Protocol):
    """External trace-search collaborator; may be sync or async."""

    def search_traces(self, request: dict[str, Any]) -> Any:
        ...


def parse_lookback(lookback: str) -> timedelta:
    """Convert ``"15m"``, ``"1h"``, ``"2d"`` or ``"1w"`` into a timedelta."""
    match = _LOOKBACK_RE.match(lookback.strip())
    if not match or int(match.group(1)) <= 0:
        raise ConfigurationError(f"Invalid lookback: {lookback!r} (expected e.g. 15m, 1h, 2d, 1w)")
    amount, unit = match.groups()
    return timedelta(**{_LOOKBACK_UNITS[unit]: int(amount)})


def to_micros(moment: datetime) -> int:
    """Epoch microseconds at millisecond precision."""
    return int(moment.timestamp() * 1000) * 1000


def lookback_to_timestamp(lookback: str, now: datetime) -> int:
    return to_micros(now - parse_lookback(lookback))


def build_search_request(
    filters: FilterSet,
    now: datetime | None = None,
    lookback: str = DEFAULT_LOOKBACK,
    limit: int = DEFAULT_LIMIT,
) -> dict[str, Any]:
    """Shape ``filters`` into the parameters the trace-search action expects.

    ``service``/``operation`` fall back to ``"-"`` (any); the time window is
    ``[now - lookback, now]`` in epoch microseconds.
    """
    now = now or datetime.now(timezone.utc)

    request: dict[str, Any] = {
        "service": filters.get("service") or ANY_VALUE,
        "operation": filters.get("operation") or ANY_VALUE,
        "start": str(lookback_to_timestamp(lookback, now)),
        "end": to_micros(now),
        "limit": str(limit),
        "lookback": lookback,
    }
    for key in ("minDuration", "maxDuration", "tags"):
        if filters.get(key):
            request[key] = filters[key]
    return request
