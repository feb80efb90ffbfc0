from __future__ import annotations

import re
from datetime import timedelta
from pathlib import Path

from projman.core.errors import PathInvalidError

_DURATION_RE = re.compile(r"^(\d+)\s*(h|d|w|mo|y)$")

_UNIT_HOURS = {
    "h": 1,
    "d": 24,
    "w": 24 * 7,
    "mo": 24 * 30,
    "y": 24 * 365,
}


def parse_time_duration(text: str) -> timedelta:
    """
    Parse strings like "12h", "7d", "2w", "1mo", "1y".
    Raises ValueError for anything else, including zero.
    """
    m = _DURATION_RE.match(text.strip().lower())
    if not m:
        raise ValueError(f"Invalid time format: {text!r} (expected e.g. 7d, 2w, 1mo)")
    amount = int(m.group(1))
    if amount <= 0:
        raise ValueError(f"Duration must be positive: {text!r}")
    try:
        return timedelta(hours=amount * _UNIT_HOURS[m.group(2)])
    except OverflowError as e:
        raise ValueError(f"Duration is too large: {text!r}") from e


def resolve_path(path: str | Path) -> Path:
    return Path(path).expanduser().resolve()


def validate_path(path: str | Path) -> Path:
    p = resolve_path(path)
    if not p.exists():
        raise PathInvalidError(f"Path does not exist: {p}")
    if not p.is_dir():
        raise PathInvalidError(f"Path is not a directory: {p}")
    return p
