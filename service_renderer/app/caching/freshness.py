"""
Read-time freshness policy for cached renders.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from .models import CacheEntry, as_utc

DEFAULT_TTL = timedelta(minutes=5)
# Larger windows are clamped so timestamp arithmetic cannot overflow.
MAX_TTL = timedelta(days=36500)


def parse_ttl(raw: Any, default: timedelta = DEFAULT_TTL) -> timedelta:
    """Turn a caller supplied TTL in milliseconds into a timedelta.

    Numbers and numeric strings are accepted. Anything else, including
    negative, non-finite and boolean values, falls back to ``default``.
    """
    if raw is None or isinstance(raw, bool):
        return default

    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            return default
        try:
            value = float(raw)
        except ValueError:
            return default
    elif isinstance(raw, (int, float)):
        try:
            value = float(raw)
        except OverflowError:
            return default
    else:
        return default

    if not math.isfinite(value) or value < 0:
        return default

    if value >= MAX_TTL / timedelta(milliseconds=1):
        return MAX_TTL
    return timedelta(milliseconds=value)


def is_fresh(entry: Union[CacheEntry, datetime], now: datetime, ttl: Optional[timedelta] = None) -> bool:
    """Whether a cached entry may be served at ``now``.

    Fresh iff ``timestamp <= now < timestamp + ttl``. An entry stamped in the
    future is not fresh yet, and one exactly ``ttl`` old has expired.
    """
    if ttl is None:
        ttl = DEFAULT_TTL

    timestamp = entry.timestamp if isinstance(entry, CacheEntry) else entry
    timestamp = as_utc(timestamp)
    now = as_utc(now)

    return timestamp <= now < timestamp + ttl
