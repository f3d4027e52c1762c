"""
EmoSense - Session History

Bounded rolling record of the most recent emotional-state labels for one
session. Supplied to the classifier as context.

Privacy Notes:
    - Only labels are stored, never user text
    - History is memory-only and discarded when the session ends
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Iterator, List

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 3


class SessionHistory:
    """
    Strict FIFO of emotional-state labels.

    Appending beyond capacity evicts the oldest label. Only the risk
    pipeline mutates it, and only after a classifier-path assessment.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_SIZE):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._labels: Deque[str] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def append(self, emotional_state: str) -> None:
        """Record a label, evicting the oldest if at capacity."""
        if len(self._labels) == self._capacity:
            logger.debug("History at capacity, evicting '%s'", self._labels[0])
        self._labels.append(emotional_state)

    def snapshot(self) -> List[str]:
        """Copy of the labels, oldest first."""
        return list(self._labels)

    def clear(self) -> None:
        self._labels.clear()

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"SessionHistory({self.snapshot()!r}, capacity={self._capacity})"
