"""
Row Lock Manager

Per-record mutual exclusion for ledger operations. Locks are always taken
in ascending key order so two operations touching the same pair of records
cannot deadlock.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, List


def vault_key(vault_id: str) -> str:
    return f"vault:{vault_id}"


def goal_key(goal_id: str) -> str:
    return f"goal:{goal_id}"


class RowLockManager:
    """Hands out one re-entrant lock per record key"""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, keys: Iterable[str]):
        """
        Acquire the locks for all keys in global order, release in reverse

        Args:
            keys: Record keys (duplicates are collapsed)
        """
        ordered = sorted(set(keys))
        acquired: List[threading.RLock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()
