"""Per-key mutual exclusion for read-modify-write sections."""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterable, Iterator
from contextlib import ExitStack, contextmanager


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class KeyedLock:
    """Registry of locks keyed by arbitrary hashable values.

    Each key gets its own `threading.Lock`, created on first use and dropped
    once no thread holds or waits on it, so the registry does not grow with
    the number of targets ever touched.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for `key` for the duration of the block."""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.holders += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._entries[key]

    @contextmanager
    def hold_many(self, keys: Iterable[Hashable]) -> Iterator[None]:
        """Hold several keys at once.

        Keys are acquired in sorted order so concurrent callers with
        overlapping key sets cannot deadlock.
        """
        ordered = sorted(set(keys), key=repr)
        with ExitStack() as stack:
            for key in ordered:
                stack.enter_context(self.hold(key))
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
