"""
Per-user critical sections.

Route handlers are plain ``def`` functions, so FastAPI runs them on its
worker thread pool: two "start" requests for the same user can interleave
between reading the open entry and inserting the new one. Holding the
user's lock across that read-close-insert sequence serialises them. The
partial unique index on time_entries catches anything that gets past this
(other processes).
"""
import threading
import weakref
from contextlib import contextmanager
from typing import Iterator


class UserLockRegistry:
    """
    Locks are held weakly: a user's lock lives while some thread holds or
    waits on it and is dropped afterwards, so the registry does not grow
    with every user id ever seen.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def lock_for(self, user_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, user_id: int) -> Iterator[None]:
        lock = self.lock_for(user_id)
        with lock:
            yield


# One registry per process; the invariant is per user, not per request.
user_locks = UserLockRegistry()
