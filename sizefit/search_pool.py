"""
Search Pool
System-wide ceiling on simultaneous searches with a bounded wait queue.
Requests beyond the queue are rejected instead of piling up encoders.
"""

import contextlib
import logging
import threading
from typing import Any, Callable, Dict, Optional

import psutil

from .error_handler import CapacityError

logger = logging.getLogger(__name__)

# Rough working-set budget for one search (decoded source plus encoder)
MEMORY_PER_SEARCH_BYTES = 512 * 1024 * 1024


def recommended_workers(cap: int = 4) -> int:
    """Worker count from logical CPUs and available memory, at least 1."""
    cpu_count = psutil.cpu_count(logical=True) or 1
    available = psutil.virtual_memory().available
    by_memory = max(1, int(available // MEMORY_PER_SEARCH_BYTES))
    return max(1, min(cap, cpu_count, by_memory))


class SearchPool:
    """Admission control for searches.

    At most ``max_workers`` searches run at once and at most ``max_queued``
    wait for a slot; anything beyond that raises CapacityError immediately.
    A queued request that waits longer than ``queue_timeout`` also raises.
    """

    def __init__(self, max_workers: Optional[int] = None, max_queued: int = 8,
                 queue_timeout: Optional[float] = 120.0):
        self.max_workers = max_workers if max_workers and max_workers > 0 else recommended_workers()
        self.max_queued = max(0, int(max_queued))
        self.queue_timeout = queue_timeout
        self._semaphore = threading.BoundedSemaphore(self.max_workers)
        self._lock = threading.Lock()
        self._active = 0
        self._waiting = 0
        logger.debug(f"Search pool: {self.max_workers} workers, {self.max_queued} queued")

    @classmethod
    def from_config(cls, config) -> "SearchPool":
        timeout = config.get('search_pool.queue_timeout_seconds', 120)
        return cls(
            max_workers=int(config.get('search_pool.max_workers', 0) or 0),
            max_queued=int(config.get('search_pool.max_queued', 8)),
            queue_timeout=float(timeout) if timeout is not None else None,
        )

    @contextlib.contextmanager
    def slot(self):
        with self._lock:
            if self._active + self._waiting >= self.max_workers + self.max_queued:
                raise CapacityError(
                    f"Server busy: {self._active} searches running and {self._waiting} queued"
                )
            self._waiting += 1

        acquired = self._semaphore.acquire(timeout=self.queue_timeout)
        with self._lock:
            self._waiting -= 1
            if acquired:
                self._active += 1
        if not acquired:
            raise CapacityError(f"Timed out after {self.queue_timeout}s waiting for a search slot")

        try:
            yield
        finally:
            with self._lock:
                self._active -= 1
            self._semaphore.release()

    def run(self, func: Callable, *args, **kwargs) -> Any:
        """Run func in the calling thread while holding a slot"""
        with self.slot():
            return func(*args, **kwargs)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                'active': self._active,
                'queued': self._waiting,
                'max_workers': self.max_workers,
                'max_queued': self.max_queued,
            }
