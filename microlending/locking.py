"""
Per-loan mutation locks.

Every mutation of a loan's ledger or aggregate runs under that loan's lock,
so two postings can never both read paid count ``k`` and both write ``k+1``.
Reads take no lock.
"""

import threading
from contextlib import contextmanager
from typing import Dict


class LoanLockRegistry:
    """
    Re-entrant lock per loan id, created on first use and dropped once no
    thread holds or waits for it
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._users: Dict[str, int] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _acquire_entry(self, loan_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(loan_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[loan_id] = lock
            self._users[loan_id] = self._users.get(loan_id, 0) + 1
            return lock

    def _release_entry(self, loan_id: str) -> None:
        with self._guard:
            self._users[loan_id] -= 1
            if self._users[loan_id] == 0:
                del self._users[loan_id]
                del self._locks[loan_id]

    @contextmanager
    def hold(self, loan_id: str):
        """Serialize the enclosed block against other mutations of ``loan_id``"""
        lock = self._acquire_entry(loan_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(loan_id)
