"""Rolling history of relayed frames for late subscribers."""

from __future__ import annotations

from collections import deque


class HistoryBuffer:
    """Fixed-capacity FIFO of wire frames, oldest first.

    Not synchronized on its own: the broker mutates it only while holding
    its lock.
    """

    def __init__(self, capacity: int = 50) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self._capacity = capacity
        self._items: deque[str] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, item: str) -> None:
        # deque(maxlen=...) drops exactly one item from the head when full
        self._items.append(item)

    def snapshot(self) -> list[str]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)
