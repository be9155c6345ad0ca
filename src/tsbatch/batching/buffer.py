"""Thread-safe staging queue for pending batch entries."""

from __future__ import annotations

import threading
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class BatchQueue(Generic[T]):
    """Unbounded FIFO shared by producer threads and the flush executor.

    ``put`` and ``drain`` take the same lock, so every put lands entirely
    before or entirely after any given drain.

    Example:
        >>> queue = BatchQueue[str]()
        >>> queue.put("a")
        1
        >>> queue.drain()
        ['a']
    """

    def __init__(self) -> None:
        self._items: deque[T] = deque()
        self._lock = threading.Lock()

    def put(self, item: T) -> int:
        """Append an item.

        Returns:
            Queue size right after the append.
        """
        with self._lock:
            self._items.append(item)
            return len(self._items)

    def drain(self) -> list[T]:
        """Remove and return everything currently queued, oldest first."""
        with self._lock:
            items = list(self._items)
            self._items.clear()
            return items

    @property
    def size(self) -> int:
        """Get current number of items."""
        with self._lock:
            return len(self._items)

    @property
    def is_empty(self) -> bool:
        """Check if queue is empty."""
        return self.size == 0

    def __len__(self) -> int:
        return self.size
