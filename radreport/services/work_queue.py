"""
In-process work queue for report generation
Holds archive instance ids waiting for the report worker. Volatile: items are
lost when the process stops.
"""
import threading
from collections import deque
from typing import Optional, List


class WorkQueue:
    """Unbounded FIFO shared by many producers and the single report worker"""

    def __init__(self):
        self._items = deque()
        self._lock = threading.Lock()

    def enqueue(self, item: str) -> None:
        with self._lock:
            self._items.append(item)

    def enqueue_if_absent(self, item: str) -> bool:
        """Append unless an equal item is already waiting; returns True if appended"""
        with self._lock:
            # Linear scan - the queue is expected to stay small
            if item in self._items:
                return False
            self._items.append(item)
            return True

    def try_dequeue(self) -> Optional[str]:
        """Pop the head without blocking; None when empty"""
        with self._lock:
            if not self._items:
                return None
            return self._items.popleft()

    def contains(self, item: str) -> bool:
        with self._lock:
            return item in self._items

    def snapshot(self) -> List[str]:
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self):
        with self._lock:
            return len(self._items)
