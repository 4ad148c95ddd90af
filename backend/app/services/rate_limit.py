from __future__ import annotations

import threading
import time
from collections import defaultdict, deque


class SimpleRateLimiter:
    """Sliding-window limiter keyed by an arbitrary string (IP, email, ...)."""

    def __init__(self, *, max_events: int, window_seconds: int, clock=time.monotonic) -> None:
        self.max_events = max_events
        self.window_seconds = window_seconds
        self._clock = clock
        self._events: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        now = self._clock()
        window_start = now - self.window_seconds
        with self._lock:
            events = self._events[key]
            while events and events[0] < window_start:
                events.popleft()
            if len(events) >= self.max_events:
                return False
            events.append(now)
            return True

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._events.clear()
            else:
                self._events.pop(key, None)
