import time
from datetime import datetime
from typing import Optional

MINUTE = 60
HOUR = 3600
DAY = 86400

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def _bucket(seconds: float) -> str:
    # Whole units only, truncated
    if seconds < MINUTE:
        return f"{int(seconds)}s"
    if seconds < HOUR:
        return f"{int(seconds // MINUTE)}m"
    if seconds < DAY:
        return f"{int(seconds // HOUR)}h"
    return f"{int(seconds // DAY)}d"


def time_ago(epoch: Optional[float], now: Optional[float] = None) -> str:
    if epoch is None:
        return "Unknown"
    now = time.time() if now is None else now
    return f"{_bucket(max(now - epoch, 0))} ago"


def time_until(epoch: Optional[float], now: Optional[float] = None) -> str:
    if epoch is None:
        return "Now"
    now = time.time() if now is None else now
    remaining = epoch - now
    if remaining <= 0:
        return "Now"
    return f"in {_bucket(remaining)}"


def format_epoch(epoch: Optional[float]) -> Optional[str]:
    if epoch is None:
        return None
    return datetime.fromtimestamp(epoch).strftime(TIMESTAMP_FORMAT)
