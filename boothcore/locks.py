"""
In-process keyed mutexes.

Reservation serializes per booth and the credits ledger serializes per user.
Row locks (``SELECT ... FOR UPDATE``) cover multiple processes on databases
that support them; these locks cover threads inside one worker, which is
also what keeps SQLite deployments correct.

Lock ordering: a booth lock is always taken before a user lock. Locks are
reentrant so a caller can hold a key across its commit while the code it
calls takes the same key again.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable


class KeyedLock:
    """A map of reentrant locks keyed by id; a key's entry lives while it is held or awaited"""

    def __init__(self, name: str):
        self.name = name
        self._guard = threading.Lock()
        # key -> [lock, holders and waiters]
        self._locks: Dict[Hashable, list] = {}

    @contextmanager
    def hold(self, key: Hashable):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)

    def __repr__(self) -> str:
        return f"<KeyedLock {self.name}: {len(self._locks)} keys in use>"


booth_locks = KeyedLock("booth")
user_locks = KeyedLock("user")
