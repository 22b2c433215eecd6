"""In-memory sliding-window rate limiting strategy.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock per key; keys never contend with each other.
- Bounded: keys idle for a whole window are swept, at most once per window.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable

from blog_api.adapters.rate_limit.base import (
    AbstractStrategy,
    Decision,
    RateLimitRequest,
    decide,
)


class InMemorySlidingWindowStrategy(AbstractStrategy):
    """Sliding-window log kept in process memory.

    Each key owns a deque of event timestamps in arrival order. Timestamps
    older than the window are dropped the next time the same key is seen, and
    keys whose newest event left the window are dropped by a periodic sweep.

    Important:
        This strategy is per-process only. Use the Redis strategy when the API
        runs with several workers or instances.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the strategy.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._events: dict[str, deque[float]] = {}
        self._locks: dict[str, threading.Lock] = {}
        # Guards membership of both dicts; never held while waiting on a key lock
        self._registry_lock = threading.Lock()
        self._last_sweep: float | None = None

    def _lock_for(self, key: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(key, threading.Lock())

    def _acquire(self, key: str) -> threading.Lock:
        while True:
            lock = self._lock_for(key)
            lock.acquire()
            # A sweep may retire the lock between lookup and acquire
            if self._locks.get(key) is lock:
                return lock
            lock.release()

    async def run(self, request: RateLimitRequest) -> Decision:
        if not request.key:
            raise ValueError("key must be a non-empty string")

        window = request.duration.total_seconds()
        lock = self._acquire(request.key)
        try:
            # Read the clock under the lock so each deque stays time-ordered
            now = self._clock()
            window_start = now - window
            events = self._events.setdefault(request.key, deque())
            while events and events[0] < window_start:
                events.popleft()
            events.append(now)
            total = len(events)
        finally:
            lock.release()

        if self._last_sweep is None or now - self._last_sweep >= window:
            self._last_sweep = now
            self.sweep(window_start)

        return decide(total, request, now)

    def sweep(self, older_than: float) -> int:
        """Drop keys with no event at or after ``older_than``.

        Keys currently being counted are skipped and picked up by a later sweep.

        Returns:
            Number of keys dropped.
        """
        dropped = 0
        with self._registry_lock:
            for key, lock in list(self._locks.items()):
                if not lock.acquire(blocking=False):
                    continue
                try:
                    events = self._events.get(key)
                    if events and events[-1] >= older_than:
                        continue
                    self._events.pop(key, None)
                    del self._locks[key]
                    dropped += 1
                finally:
                    lock.release()
        return dropped

    def reset(self, key: str | None = None) -> None:
        """Forget recorded events for one key, or for every key.

        Locks stay registered so a request in flight keeps exclusive access;
        the next sweep removes the ones left without events.
        """
        with self._registry_lock:
            if key is None:
                self._events.clear()
            else:
                self._events.pop(key, None)
