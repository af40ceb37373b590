from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from bsm.domain.errors import RateLimitExceededError

log = logging.getLogger("bsm.ratelimit")


class RateLimiter:
    """Sliding-window limiter keyed by caller (e.g. client address).

    The owner starts and stops the background sweep; nothing runs at import time.
    """

    def __init__(
        self,
        limit: int = 30,
        window_seconds: float = 60.0,
        sweep_interval_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0 or sweep_interval_seconds <= 0:
            raise ValueError("window and sweep interval must be > 0")
        self.limit = int(limit)
        self.window_seconds = float(window_seconds)
        self.sweep_interval_seconds = float(sweep_interval_seconds)
        self.clock = clock
        self._hits: dict[str, list[float]] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def hit(self, key: str) -> bool:
        now = self.clock()
        with self._lock:
            recent = [t for t in self._hits.get(key, ()) if now - t < self.window_seconds]
            allowed = len(recent) < self.limit
            if allowed:
                recent.append(now)
            self._hits[key] = recent
        return allowed

    def check(self, key: str) -> None:
        if not self.hit(key):
            log.warning("rate_limited key=%s limit=%s window=%s", key, self.limit, self.window_seconds)
            raise RateLimitExceededError(key, self.limit, self.window_seconds)

    def sweep(self) -> int:
        """Drops expired timestamps; returns how many keys were forgotten."""
        now = self.clock()
        removed = 0
        with self._lock:
            for key in list(self._hits):
                recent = [t for t in self._hits[key] if now - t < self.window_seconds]
                if recent:
                    self._hits[key] = recent
                else:
                    del self._hits[key]
                    removed += 1
        if removed:
            log.info("rate_limit_sweep removed=%s remaining=%s", removed, len(self))
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._hits)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="rate-limit-sweep", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.wait(self.sweep_interval_seconds):
            self.sweep()

    def __enter__(self) -> "RateLimiter":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
