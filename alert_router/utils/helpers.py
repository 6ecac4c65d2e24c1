"""Utility helper functions"""

import re
import socket
import platform
from datetime import datetime, timezone

_DURATION_RE = re.compile(r'(\d+(?:\.\d+)?)(ms|s|m|h|d|w|y)')

_FRACTION_RE = re.compile(r'(\.\d+)')

_DURATION_UNITS = {
    'ms': 0.001,
    's': 1,
    'm': 60,
    'h': 3600,
    'd': 86400,
    'w': 604800,
    'y': 31536000,
}


def get_hostname():
    """Get system hostname"""
    try:
        return socket.gethostname()
    except Exception:
        return platform.node() or "unknown"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime"""
    return datetime.now(timezone.utc)


def parse_duration(value) -> float:
    """
    Parse a Prometheus-style duration into seconds.

    Accepts '30s', '5m', '1h30m', '12h', '1d' as well as plain numbers
    (already seconds).

    Raises:
        ValueError: If the value is not a valid duration
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Invalid duration: {value!r}")
        return float(value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid duration: {value!r}")

    text = value.strip()
    total = 0.0
    pos = 0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            raise ValueError(f"Invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos != len(text):
        raise ValueError(f"Invalid duration: {value!r}")
    return total


def format_duration(seconds: float) -> str:
    """Format seconds as a compact duration string (e.g. '1h30m')"""
    if seconds <= 0:
        return '0s'
    remaining = int(seconds)
    parts = []
    for unit, size in (('d', 86400), ('h', 3600), ('m', 60), ('s', 1)):
        if remaining >= size:
            parts.append(f"{remaining // size}{unit}")
            remaining %= size
    return ''.join(parts) or f"{seconds:.3f}s"


def parse_timestamp(value):
    """
    Parse an RFC3339 timestamp (or datetime) into an aware UTC datetime.

    Returns None for empty values and for Go's zero time
    ('0001-01-01T00:00:00Z'), which senders use to mean "unset".
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.startswith('0001-01-01'):
            return None
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        # Go emits nanoseconds, fromisoformat takes at most microseconds
        text = _FRACTION_RE.sub(lambda m: m.group(1)[:7].ljust(7, '0'), text)
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Invalid timestamp: {value!r}")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
