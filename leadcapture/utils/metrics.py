"""
Latency helpers for the conversation path.
"""
import time
from typing import Optional


class Timer:
    """Simple timer for measuring operation latency."""

    def __init__(self):
        self._start: Optional[float] = None
        self._end: Optional[float] = None

    def start(self) -> "Timer":
        self._start = time.monotonic()
        return self

    def stop(self) -> int:
        """Stop timer and return elapsed milliseconds."""
        self._end = time.monotonic()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> int:
        if self._start is None:
            return 0
        end = self._end or time.monotonic()
        return int((end - self._start) * 1000)


def response_time_bucket(ms: int) -> str:
    """Categorize a reply latency into display buckets for the turn log."""
    if ms < 2000:
        return "0-2s"
    elif ms < 5000:
        return "2-5s"
    elif ms < 15000:
        return "5-15s"
    else:
        return "15s+"
