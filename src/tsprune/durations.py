"""Duration shorthands used in retention rules.

Months are 30 days and years 365 days, so rule ages are fixed spans rather
than calendar arithmetic.

Example:
    >>> parse_duration("14d")
    datetime.timedelta(days=14)
    >>> parse_duration("1 month") == MONTH
    True
    >>> format_duration(parse_duration(8 * 3600))
    '8 hours'
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta

from tsprune.base import ConfigurationError

MINUTE = timedelta(minutes=1)
HOUR = timedelta(hours=1)
DAY = timedelta(days=1)
WEEK = timedelta(days=7)
MONTH = timedelta(days=30)
YEAR = timedelta(days=365)

_UNITS: dict[str, timedelta] = {
    "s": timedelta(seconds=1),
    "sec": timedelta(seconds=1),
    "second": timedelta(seconds=1),
    "m": MINUTE,
    "min": MINUTE,
    "minute": MINUTE,
    "h": HOUR,
    "hour": HOUR,
    "d": DAY,
    "day": DAY,
    "w": WEEK,
    "week": WEEK,
    "mo": MONTH,
    "month": MONTH,
    "y": YEAR,
    "year": YEAR,
}

# Units that accept a plural "s"; single-letter units never do.
_PLURALS = {"sec", "second", "min", "minute", "hour", "day", "week", "month", "year"}

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-z]+)\s*$", re.IGNORECASE)


def parse_duration(value: str | int | float | timedelta) -> timedelta:
    """Parse a duration such as ``"14d"``, ``"2 hours"`` or ``3600``.

    Bare numbers are seconds.

    Args:
        value: Duration string, number of seconds, or timedelta.

    Returns:
        The duration as a timedelta.

    Raises:
        ConfigurationError: If the value cannot be parsed.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = str(value).strip()
    if text.isdigit():
        return timedelta(seconds=int(text))

    match = _DURATION_RE.match(text)
    if not match:
        raise ConfigurationError(f"Invalid duration: {value!r}")

    amount, unit = match.groups()
    unit = unit.lower()
    if unit not in _UNITS and unit.endswith("s") and unit[:-1] in _PLURALS:
        unit = unit[:-1]
    if unit not in _UNITS:
        raise ConfigurationError(f"Unknown duration unit {unit!r} in {value!r}")
    return _UNITS[unit] * float(amount)


def format_duration(duration: timedelta) -> str:
    """Human-readable rendering of a duration."""
    seconds = int(duration.total_seconds())
    for name, unit in (
        ("year", YEAR),
        ("month", MONTH),
        ("week", WEEK),
        ("day", DAY),
        ("hour", HOUR),
        ("minute", MINUTE),
    ):
        unit_seconds = int(unit.total_seconds())
        if seconds >= unit_seconds and seconds % unit_seconds == 0:
            count = seconds // unit_seconds
            return f"{count} {name}{'s' if count != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"


def ago(duration: timedelta, now: datetime) -> datetime:
    """Point in time ``duration`` before ``now``."""
    return now - duration


def to_epoch(moment: datetime) -> int:
    """Whole unix seconds for a timezone-aware datetime."""
    return int(moment.timestamp())
