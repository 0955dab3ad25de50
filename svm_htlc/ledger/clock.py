"""
Ledger clock sources.

Programs read the clock once per instruction and use that value for every
window check in it.
"""

import threading
import time


class SystemClock:
    """Wall clock in unix seconds. Never reports a value lower than a previous one."""

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def unix_timestamp(self) -> int:
        with self._lock:
            now = int(time.time())
            if now < self._last:
                now = self._last
            self._last = now
            return now


class ManualClock:
    """Settable clock for tests and local devnets."""

    def __init__(self, start: int = 0):
        self._now = int(start)
        self._lock = threading.Lock()

    def unix_timestamp(self) -> int:
        with self._lock:
            return self._now

    def set(self, timestamp: int) -> None:
        with self._lock:
            if timestamp < self._now:
                raise ValueError(f"Clock cannot move backwards ({timestamp} < {self._now})")
            self._now = int(timestamp)

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Cannot advance clock by a negative amount")
        with self._lock:
            self._now += int(seconds)
            return self._now
