"""Utility functions for mfssync."""

import posixpath
import re
from datetime import datetime, timezone
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

# Default store daemon API endpoint
DEFAULT_API_HOST: str = "127.0.0.1"
DEFAULT_API_PORT: int = 5001

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

# Request timeout; adds of large files can take a while
DEFAULT_TIMEOUT: float = 300.0

# Arrow used for "hash → path" progress lines
ARROW: str = "→"


# =============================================================================
# Duration parsing utilities
# =============================================================================

_DURATION_UNITS: dict[str, float] = {
    "nsec": 1e-9,
    "ns": 1e-9,
    "usec": 1e-6,
    "us": 1e-6,
    "msec": 1e-3,
    "ms": 1e-3,
    "seconds": 1.0,
    "second": 1.0,
    "secs": 1.0,
    "sec": 1.0,
    "s": 1.0,
    "minutes": 60.0,
    "minute": 60.0,
    "mins": 60.0,
    "min": 60.0,
    "m": 60.0,
    "hours": 3600.0,
    "hour": 3600.0,
    "hrs": 3600.0,
    "hr": 3600.0,
    "h": 3600.0,
    "days": 86400.0,
    "day": 86400.0,
    "d": 86400.0,
    "weeks": 604800.0,
    "week": 604800.0,
    "w": 604800.0,
    "months": 2630016.0,
    "month": 2630016.0,
    "M": 2630016.0,
    "years": 31557600.0,
    "year": 31557600.0,
    "y": 31557600.0,
}

_DURATION_TERM = re.compile(r"\s*(\d+)\s*([A-Za-z]+)")


def parse_duration(value: str) -> float:
    """Parse a human-readable duration into seconds.

    Accepts one or more ``<number><unit>`` terms, optionally separated by
    whitespace, e.g. ``"10s"``, ``"1m 30s"``, ``"1h30m"`` or ``"500ms"``.

    Args:
        value: Duration string

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the string is empty, has no unit or an unknown unit

    Examples:
        >>> parse_duration("1m 30s")
        90.0
        >>> parse_duration("500ms")
        0.5
    """
    text = value.strip()
    if not text:
        raise ValueError("Empty duration")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_TERM.match(text, pos)
        if match is None:
            if text[pos:].strip().isdigit():
                raise ValueError(f"Time unit needed in duration {value!r}")
            raise ValueError(f"Invalid duration {value!r}")
        number, unit = match.groups()
        if unit not in _DURATION_UNITS:
            raise ValueError(f"Unknown time unit {unit!r} in duration {value!r}")
        total += int(number) * _DURATION_UNITS[unit]
        pos = match.end()
        while pos < len(text) and text[pos].isspace():
            pos += 1
    return total


# =============================================================================
# Timestamp parsing utilities
# =============================================================================


def parse_timestamp(value: str) -> int:
    """Parse a sync-from threshold into UNIX seconds.

    Two forms are accepted: ``@<unix-seconds>`` and an RFC 3339 style
    timestamp (``2018-02-16T00:31:37Z``, ``2018-02-16 00:31:37``). Timestamps
    without an offset are taken as UTC.

    Args:
        value: Timestamp string

    Returns:
        UNIX time in whole seconds

    Raises:
        ValueError: If the value cannot be parsed

    Examples:
        >>> parse_timestamp("@1700000000")
        1700000000
        >>> parse_timestamp("1970-01-01T00:01:00Z")
        60
    """
    text = value.strip()
    if text.startswith("@"):
        seconds = text[1:]
        if not seconds.isdigit():
            raise ValueError(f"Invalid UNIX timestamp {value!r}")
        return int(seconds)

    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValueError(f"Invalid timestamp {value!r}") from e
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def format_timestamp(timestamp: Optional[int]) -> str:
    """Format a UNIX timestamp for display (UTC, second precision)."""
    if timestamp is None:
        return "never"
    dt = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Remote path utilities
# =============================================================================


def join_remote(directory: str, *names: str) -> str:
    """Join MFS path components and normalize the result.

    Examples:
        >>> join_remote("/backup", "docs", "a.txt")
        '/backup/docs/a.txt'
        >>> join_remote("/backup/docs", "../b/c.txt")
        '/backup/b/c.txt'
    """
    return posixpath.normpath(posixpath.join(directory, *names))


def is_absolute_remote(path: str) -> bool:
    """Check that a path is an absolute MFS path."""
    return path.startswith("/")
