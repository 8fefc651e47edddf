"""Thread-safe FIFO between the value-changed callback and the drain task."""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Iterable

LOGGER = logging.getLogger(__name__)


class SampleQueue:
    """Unbounded FIFO of 16-bit samples.

    There is no backpressure. When ``warn_threshold`` is positive, a warning
    is logged the first time the queue grows past it, and re-armed once the
    queue drains back below it.
    """

    def __init__(self, *, warn_threshold: int = 0) -> None:
        self._items: deque[int] = deque()
        self._lock = threading.Lock()
        self._warn_threshold = warn_threshold
        self._warned = False

    def enqueue(self, sample: int) -> None:
        with self._lock:
            self._items.append(sample)
            self._check_threshold()

    def extend(self, samples: Iterable[int]) -> None:
        with self._lock:
            self._items.extend(samples)
            self._check_threshold()

    def try_dequeue(self) -> int | None:
        with self._lock:
            if not self._items:
                return None
            sample = self._items.popleft()
            if self._warned and len(self._items) < self._warn_threshold:
                self._warned = False
            return sample

    def clear(self) -> int:
        with self._lock:
            dropped = len(self._items)
            self._items.clear()
            self._warned = False
        if dropped:
            LOGGER.debug("cleared %d undelivered samples", dropped)
        return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _check_threshold(self) -> None:
        if self._warn_threshold <= 0 or self._warned:
            return
        if len(self._items) >= self._warn_threshold:
            self._warned = True
            LOGGER.warning(
                "sample queue reached %d entries; device is producing faster than the bridge drains",
                len(self._items),
            )
