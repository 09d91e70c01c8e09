"""
Per-loan mutual exclusion.

Mutating operations on the same loan run one at a time; different loans
never wait on each other. A loan's lock lives only while some thread holds
or waits on it.
"""

import threading
from contextlib import contextmanager
from typing import Dict, List


class _LoanLock:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.RLock()
        self.holders = 0


class LoanLockRegistry:
    """Hands out one re-entrant lock per loan id"""

    def __init__(self):
        self._locks: Dict[str, _LoanLock] = {}
        self._guard = threading.Lock()

    def _acquire_entry(self, loan_id: str) -> _LoanLock:
        with self._guard:
            entry = self._locks.get(loan_id)
            if entry is None:
                entry = _LoanLock()
                self._locks[loan_id] = entry
            entry.holders += 1
            return entry

    def _release_entry(self, loan_id: str, entry: _LoanLock) -> None:
        with self._guard:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[loan_id]

    @contextmanager
    def hold(self, loan_id: str):
        # Re-entrant so payment settlement can trigger completion on the same loan
        entry = self._acquire_entry(loan_id)
        try:
            with entry.lock:
                yield
        finally:
            self._release_entry(loan_id, entry)

    def held_loan_ids(self) -> List[str]:
        """Loan ids with a live lock entry"""
        with self._guard:
            return list(self._locks)
