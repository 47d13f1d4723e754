"""In-process lock registries."""

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field


@dataclass
class KeyedLocks:
    """One mutex per key, dropped once no caller holds or waits on it."""

    _locks: dict[Hashable, threading.Lock] = field(default_factory=dict)
    _holders: dict[Hashable, int] = field(default_factory=dict)
    _guard: threading.Lock = field(default_factory=threading.Lock)

    def active_keys(self) -> int:
        """Return how many keys are currently held or awaited."""
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._holders[key] = self._holders.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._holders[key] -= 1
                if not self._holders[key]:
                    del self._holders[key]
                    del self._locks[key]


class _SharedExclusiveLock:
    """Many shared holders or one exclusive holder; exclusive waiters go first."""

    def __init__(self) -> None:
        self._condition = threading.Condition()
        self._shared = 0
        self._exclusive = False
        self._waiting_exclusive = 0

    def acquire_shared(self) -> None:
        with self._condition:
            while self._exclusive or self._waiting_exclusive:
                self._condition.wait()
            self._shared += 1

    def release_shared(self) -> None:
        with self._condition:
            self._shared -= 1
            if self._shared == 0:
                self._condition.notify_all()

    def acquire_exclusive(self) -> None:
        with self._condition:
            self._waiting_exclusive += 1
            try:
                while self._exclusive or self._shared:
                    self._condition.wait()
            finally:
                self._waiting_exclusive -= 1
            self._exclusive = True

    def release_exclusive(self) -> None:
        with self._condition:
            self._exclusive = False
            self._condition.notify_all()


@dataclass
class MonthLocks:
    """Advisory month-level locks.

    Toggles take the month in shared mode; the charge run and finalization
    take it exclusively, so a toggle lands either before or after them.
    """

    _locks: dict[Hashable, _SharedExclusiveLock] = field(default_factory=dict)
    _guard: threading.Lock = field(default_factory=threading.Lock)

    def _lock_for(self, key: Hashable) -> _SharedExclusiveLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = _SharedExclusiveLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def shared(self, key: Hashable) -> Iterator[None]:
        """Hold the month in shared mode."""
        lock = self._lock_for(key)
        lock.acquire_shared()
        try:
            yield
        finally:
            lock.release_shared()

    @contextmanager
    def exclusive(self, key: Hashable) -> Iterator[None]:
        """Hold the month exclusively."""
        lock = self._lock_for(key)
        lock.acquire_exclusive()
        try:
            yield
        finally:
            lock.release_exclusive()
