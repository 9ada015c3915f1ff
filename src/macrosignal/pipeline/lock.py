"""Run-level mutual exclusion: acquire or skip, never queue."""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class RunLock:
    """Non-blocking lock guarding a full pipeline run.

    A second run attempted while one is in flight does not wait; it is
    told the lock is held and becomes a no-op.

    Usage:
        lock = RunLock()
        with lock.hold() as acquired:
            if not acquired:
                return None
            ...
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> bool:
        """Acquire without blocking. Returns False if a run is in progress."""
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @contextmanager
    def hold(self) -> Iterator[bool]:
        """Context manager yielding whether the lock was acquired."""
        acquired = self.try_acquire()
        if not acquired:
            logger.warning("Run lock held by another run; skipping")
        try:
            yield acquired
        finally:
            if acquired:
                self.release()
