"""Parse interval expressions into (start, end) datetimes.

An interval is empty, a single term, or two terms joined by ``-``. A term is
either an RFC 3339 timestamp or a relative duration such as ``2d`` or ``1h30m``
counted back from now.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from core.errors import ConfigurationError

_TIMESTAMP = r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})"
_DURATION = r"(?:\d+(?:\.\d+)?[smhdw])+"
_TERM = rf"(?:{_TIMESTAMP}|{_DURATION})"
_INTERVAL_RE = re.compile(rf"^\s*(?P<start>{_TERM})(?:\s*-\s*(?P<end>{_TERM}))?\s*$")
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)([smhdw])")

_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


def _parse_timestamp(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return parsed.astimezone(timezone.utc)


def _parse_duration(text: str) -> timedelta:
    total = timedelta()
    for amount, unit in _DURATION_PART_RE.findall(text):
        total += float(amount) * _UNITS[unit]
    return total


def _parse_term(text: str, now: datetime) -> datetime:
    if re.fullmatch(_DURATION, text):
        return now - _parse_duration(text)
    return _parse_timestamp(text)


def parse_interval(text: str | None, now: datetime | None = None) -> tuple[Optional[datetime], Optional[datetime]]:
    """Return the (start, end) window described by ``text``; either side may be None."""
    if text is None or not text.strip():
        return None, None

    match = _INTERVAL_RE.match(text)
    if match is None:
        raise ConfigurationError("interval", f'cannot parse interval "{text}"')

    reference = now or datetime.now(timezone.utc)
    try:
        start = _parse_term(match.group("start"), reference)
        end = _parse_term(match.group("end"), reference) if match.group("end") else None
    except ValueError as exc:
        raise ConfigurationError("interval", f'cannot parse interval "{text}": {exc}') from exc
    return start, end


__all__ = ["parse_interval"]
