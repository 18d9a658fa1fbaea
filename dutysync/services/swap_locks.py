"""
Per-swap-pair single-writer locks.

Every mutation of a SwapPair runs inside ``registry.hold(pair_id)``, held
across "write step status, recompute completion, apply roster exchange".
Reads never take the lock.

Locks are process-local. Cross-process writers are serialized by the
optimistic version check the SQL repository performs on save.
"""

import logging
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class SwapLockRegistry:
    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._refcounts: dict[str, int] = {}
        self._guard = threading.Lock()

    @contextmanager
    def hold(self, swap_pair_id: str):
        with self._guard:
            lock = self._locks.get(swap_pair_id)
            if lock is None:
                lock = self._locks[swap_pair_id] = threading.Lock()
            self._refcounts[swap_pair_id] = self._refcounts.get(swap_pair_id, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                remaining = self._refcounts[swap_pair_id] - 1
                if remaining:
                    self._refcounts[swap_pair_id] = remaining
                else:
                    # Last holder out drops the entry so the registry stays bounded.
                    del self._refcounts[swap_pair_id]
                    del self._locks[swap_pair_id]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Shared by every request handled in this process.
default_lock_registry = SwapLockRegistry()
