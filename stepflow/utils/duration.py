"""
Duration parsing utilities.

Supports duration strings like:
- "30s" - 30 seconds
- "5m" - 5 minutes
- "2h" - 2 hours
- "3d" - 3 days
- "1w" - 1 week
"""

import re
from datetime import timedelta
from typing import Optional, Union

DURATION_PATTERN = re.compile(r"^(\d+)([smhdw])$")

_MULTIPLIERS = {
    "s": 1,  # seconds
    "m": 60,  # minutes
    "h": 3600,  # hours
    "d": 86400,  # days
    "w": 604800,  # weeks
}


def parse_duration(duration: Union[str, int, float, timedelta]) -> float:
    """
    Parse duration to seconds.

    Args:
        duration: Duration as:
            - str: Duration string ("5s", "2m", "1h") or a plain number ("90")
            - int/float: Seconds
            - timedelta: Python timedelta

    Returns:
        Number of seconds

    Raises:
        ValueError: If duration format is invalid or negative

    Examples:
        >>> parse_duration("30s")
        30.0
        >>> parse_duration("5m")
        300.0
        >>> parse_duration(60)
        60.0
    """
    if isinstance(duration, bool):
        raise TypeError("Duration must not be a bool")

    if isinstance(duration, str):
        return float(parse_duration_string(duration))

    if isinstance(duration, (int, float)):
        if duration < 0:
            raise ValueError(f"Duration must be non-negative, got {duration}")
        return float(duration)

    if isinstance(duration, timedelta):
        return duration.total_seconds()

    raise TypeError(
        f"Duration must be str, int, float, or timedelta, got {type(duration).__name__}"
    )


def parse_duration_string(duration: str) -> int:
    """
    Parse duration string to seconds.

    Supported formats:
    - {number} - seconds
    - {number}s - seconds
    - {number}m - minutes
    - {number}h - hours
    - {number}d - days
    - {number}w - weeks

    Raises:
        ValueError: If format is invalid

    Examples:
        >>> parse_duration_string("2h")
        7200
        >>> parse_duration_string("1w")
        604800
    """
    value = duration.lower().strip()
    if value.isdigit():
        return int(value)

    match = DURATION_PATTERN.match(value)
    if not match:
        raise ValueError(
            f"Invalid duration format: '{duration}'. "
            f"Expected format: <number><unit> where unit is s/m/h/d/w "
            f"(e.g., '30s', '5m', '2h', '3d', '1w')"
        )

    value_str, unit = match.groups()
    return int(value_str) * _MULTIPLIERS[unit]


def is_duration_string(value: str) -> bool:
    """Return True when ``value`` looks like "15m" rather than a cron expression."""
    return bool(DURATION_PATTERN.match(value.lower().strip()))


def parse_optional_duration(
    duration: Optional[Union[str, int, float, timedelta]],
) -> Optional[float]:
    """Parse a duration that may be missing."""
    if duration is None or duration == "":
        return None
    return parse_duration(duration)
