"""Clock helpers shared by result envelopes."""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_timestamp() -> str:
    """Current UTC time as an ISO-8601 string."""
    return utc_now().isoformat()


def elapsed_ms(start: float) -> float:
    """Milliseconds since a ``time.perf_counter()`` reading, to 0.01 ms."""
    return round((time.perf_counter() - start) * 1000, 2)
