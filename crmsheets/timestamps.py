"""Timestamp helpers shared by writers (stamping) and the aggregation service (ranking)."""
from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Optional

# Formats Sheets produces when USER_ENTERED values are re-rendered
_FALLBACK_FORMATS = (
    "%Y/%m/%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
    "%Y-%m-%d",
)


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a cell value to a UTC-aware datetime, or None if it is not a date."""
    s = (value or "").strip()
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        dt = None
        for fmt in _FALLBACK_FORMATS:
            try:
                dt = datetime.strptime(s, fmt)
                break
            except ValueError:
                continue
        if dt is None:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def first_timestamp(*values: str) -> Optional[datetime]:
    """The first value that parses, e.g. ``first_timestamp(last_update, created)``."""
    for value in values:
        dt = parse_timestamp(value)
        if dt is not None:
            return dt
    return None


def latest(*candidates: Optional[datetime]) -> Optional[datetime]:
    present = [c for c in candidates if c is not None]
    return max(present) if present else None


def now_iso() -> str:
    """Current UTC time as ``2024-05-01T08:30:00.123Z``."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


_id_lock = threading.Lock()
_last_id_ms = 0


def new_record_id(prefix: str) -> str:
    """Time-derived id such as ``COM1714552200123``; strictly increasing within the process."""
    global _last_id_ms
    with _id_lock:
        _last_id_ms = max(int(time.time() * 1000), _last_id_ms + 1)
        return f"{prefix}{_last_id_ms}"
