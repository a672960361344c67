"""Per-working-copy lock table.

Every mutating operation (sub-tree sync, atomic write) holds the lock of
the local folder it touches for its whole duration.  Keys are resolved
absolute paths, so two spellings of the same folder share one lock and
unrelated folders never contend.

Work runs in worker threads (``asyncio.to_thread``), hence
``threading.Lock`` rather than an asyncio primitive.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from ..errors import LockTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 30.0


class PathLockTable:
    """Lazily created mutexes keyed by resolved absolute path.

    Args:
        timeout: Default seconds to wait for a lock before giving up.
    """

    def __init__(self, timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self.timeout = timeout
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @staticmethod
    def key_for(path: str | Path) -> str:
        return str(Path(path).expanduser().resolve())

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, path: str | Path, timeout: float | None = None) -> Iterator[str]:
        """Hold the lock for *path* for the duration of the ``with`` block.

        Yields:
            The resolved key.

        Raises:
            LockTimeoutError: The lock was not acquired within *timeout*.
        """
        key = self.key_for(path)
        wait = self.timeout if timeout is None else timeout
        lock = self._lock_for(key)
        if not lock.acquire(timeout=wait):
            raise LockTimeoutError(key, wait)
        logger.debug("Acquired lock %s", key)
        try:
            yield key
        finally:
            lock.release()
            logger.debug("Released lock %s", key)

    def is_locked(self, path: str | Path) -> bool:
        with self._guard:
            lock = self._locks.get(self.key_for(path))
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
