"""
Per-project lock registry.

One mutation in flight per project: every write to a project's
applications runs while holding that project's lock. Projects never
share a lock, so work on different projects proceeds in parallel.

Locks are held weakly. A project's lock lives while some caller holds a
reference to it, so the registry only grows with the projects in use.
"""
import threading
import weakref
from contextlib import contextmanager
from typing import Iterator


class ProjectLockRegistry:
    """Hands out one re-entrant lock per project id."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()

    def lock_for(self, project_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(project_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[project_id] = lock
            return lock

    @contextmanager
    def hold(self, project_id: str) -> Iterator[None]:
        lock = self.lock_for(project_id)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Process-wide registry shared by every service instance
default_registry = ProjectLockRegistry()
