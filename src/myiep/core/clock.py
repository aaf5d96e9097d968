"""
Epoch-millisecond time helpers.

Log timestamps and the last-sync marker are epoch milliseconds, the unit
the backup snapshot has always used.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(timestamp_ms: int | float) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=UTC)


def date_stamp(timestamp_ms: int | float) -> str:
    """Format epoch milliseconds as YYYYMMDD (UTC)."""
    return ms_to_datetime(timestamp_ms).strftime("%Y%m%d")
