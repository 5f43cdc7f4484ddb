from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc)
    return dt_utc.isoformat().replace("+00:00", "Z")


_order_id_lock = threading.Lock()
_last_order_millis = 0


def next_order_id(prefix: str = "ORD") -> str:
    """
    Timestamp-derived order id ("ORD-1732000000000").

    Ids issued by this process are strictly increasing even when two orders
    land in the same millisecond.
    """
    global _last_order_millis
    with _order_id_lock:
        millis = int(time.time() * 1000)
        if millis <= _last_order_millis:
            millis = _last_order_millis + 1
        _last_order_millis = millis
    return f"{prefix}-{millis}"
