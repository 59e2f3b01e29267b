"""Best-solution cache keyed by problem (term) id, with TTL eviction."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, List, Optional

from .domain import Solution

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 30 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60


@dataclass(frozen=True)
class CacheEntry:
    solution: Solution
    timestamp: float


class SolutionCache:
    """Thread-safe map of problem id -> latest best Solution.

    Workers ``publish`` improving snapshots; ``publish`` refuses to replace a
    cached solution with a worse-scoring one, so readers only ever see the
    score of a key improve. Entries older than ``ttl_seconds`` are dropped
    by ``sweep``, which the background sweeper runs periodically.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, CacheEntry] = {}
        self._sweeper: Optional[threading.Thread] = None
        self._sweeper_stop = threading.Event()

    def publish(self, key: Hashable, solution: Solution) -> bool:
        """Store ``solution`` unless the cached one scores better. Returns True if stored."""
        with self._lock:
            current = self._entries.get(key)
            if (
                current is not None
                and current.solution.score is not None
                and solution.score is not None
                and solution.score < current.solution.score
            ):
                return False
            self._entries[key] = CacheEntry(solution, self._clock())
            return True

    def put(self, key: Hashable, solution: Solution) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(solution, self._clock())

    def get(self, key: Hashable) -> Optional[Solution]:
        with self._lock:
            entry = self._entries.get(key)
            return entry.solution if entry is not None else None

    def entry(self, key: Hashable) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def pop(self, key: Hashable) -> Optional[Solution]:
        with self._lock:
            entry = self._entries.pop(key, None)
            return entry.solution if entry is not None else None

    def clear(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def sweep(self, now: Optional[float] = None) -> List[Hashable]:
        """Remove entries older than the TTL; returns the evicted keys."""
        cutoff = (self._clock() if now is None else now) - self.ttl_seconds
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.timestamp < cutoff]
            for key in stale:
                del self._entries[key]
        if stale:
            logger.info("Evicted %d stale cached solution(s): %s", len(stale), stale)
        return stale

    def start_sweeper(self, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._sweeper_stop.clear()

        def run() -> None:
            while not self._sweeper_stop.wait(interval_seconds):
                self.sweep()

        self._sweeper = threading.Thread(target=run, name="solution-cache-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        self._sweeper_stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5.0)
            self._sweeper = None
