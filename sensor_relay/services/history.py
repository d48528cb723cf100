"""
Bounded history of recent samples for chart rendering.
"""
from collections import deque
from typing import Generic, Iterator, TypeVar

T = TypeVar("T")

MAX_HISTORY_LENGTH = 20


class HistoryBuffer(Generic[T]):
    """
    Fixed-capacity FIFO. Appending at capacity evicts the oldest entry,
    so len(buffer) never exceeds capacity and age order is preserved.

    Readers get snapshots; nothing but append() and clear() mutates it.
    """

    def __init__(self, capacity: int = MAX_HISTORY_LENGTH):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._items: deque[T] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen

    def append(self, item: T) -> None:
        """Add at the tail, dropping index 0 first when full."""
        self._items.append(item)

    def snapshot(self) -> list[T]:
        """Copy of the contents, oldest first."""
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self.snapshot())
