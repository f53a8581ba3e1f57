from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class ItemLockRegistry:
    """Hand out one lock per item id so mutations of the same item run one at a time.

    Locks for different items never block each other. An entry lives only
    while some thread holds or waits on it, so ids that are never seen again
    do not accumulate. The registry only coordinates threads inside one
    process; the conditional quantity update in
    :func:`toolcrib.crud.items.adjust_quantity` covers the rest.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, item_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(item_id)
            if entry is None:
                entry = self._locks[item_id] = _Entry()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._locks.pop(item_id, None)

    @property
    def active_count(self) -> int:
        with self._guard:
            return len(self._locks)
