"""Elasticsearch time and byte unit helpers.

Elasticsearch expresses ILM thresholds as strings such as ``30d`` or
``5gb``. These helpers convert between that notation and ``timedelta`` /
byte counts.
"""

import re
from datetime import timedelta

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*(d|h|m|s|ms)\s*$", re.IGNORECASE)
_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(b|kb|mb|gb|tb|pb)\s*$", re.IGNORECASE)

_DURATION_UNITS = {
    "d": timedelta(days=1),
    "h": timedelta(hours=1),
    "m": timedelta(minutes=1),
    "s": timedelta(seconds=1),
    "ms": timedelta(milliseconds=1),
}

_SIZE_UNITS = {
    "b": 1,
    "kb": 1024,
    "mb": 1024**2,
    "gb": 1024**3,
    "tb": 1024**4,
    "pb": 1024**5,
}


def is_duration_string(value: str) -> bool:
    """Check whether a string uses Elasticsearch time units."""
    return _DURATION_PATTERN.match(value) is not None


def parse_duration(value: str) -> timedelta:
    """Parse an Elasticsearch time value such as ``30d`` or ``12h``.

    Args:
        value: Time value string

    Returns:
        Equivalent timedelta

    Raises:
        ValueError: If the string is not a valid time value
    """
    match = _DURATION_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid time value: {value!r}")
    amount, unit = match.groups()
    return int(amount) * _DURATION_UNITS[unit.lower()]


def format_duration(value: timedelta) -> str:
    """Format a timedelta using the largest exact Elasticsearch time unit.

    Args:
        value: Duration to format

    Returns:
        Time value string, e.g. ``30d``
    """
    for unit in ("d", "h", "m", "s", "ms"):
        step = _DURATION_UNITS[unit]
        if value % step == timedelta(0):
            return f"{value // step}{unit}"
    # Sub-millisecond precision is not representable, round down
    return f"{value // _DURATION_UNITS['ms']}ms"


def parse_size(value: str | int) -> int:
    """Parse an Elasticsearch byte size such as ``5gb`` into bytes.

    Args:
        value: Byte size string or plain integer

    Returns:
        Number of bytes

    Raises:
        ValueError: If the value is not a valid byte size
    """
    if isinstance(value, int):
        return value
    stripped = value.strip()
    if stripped.isdigit():
        return int(stripped)
    match = _SIZE_PATTERN.match(stripped)
    if not match:
        raise ValueError(f"Invalid byte size: {value!r}")
    amount, unit = match.groups()
    return int(float(amount) * _SIZE_UNITS[unit.lower()])


def format_size(size_bytes: int) -> str:
    """Format a byte count using the largest exact Elasticsearch byte unit."""
    for unit in ("pb", "tb", "gb", "mb", "kb"):
        step = _SIZE_UNITS[unit]
        if size_bytes >= step and size_bytes % step == 0:
            return f"{size_bytes // step}{unit}"
    return f"{size_bytes}b"
