# -*- coding: utf-8 -*-
"""Fixed-capacity circular buffer computing a running mean.

The averager backs the MovingAverage transform: one averager per series,
one ``push`` and one ``average`` per datapoint, giving a trailing (not
centered) mean over the most recent ``capacity`` samples seen so far.
"""

from __future__ import annotations

from typing import List, Optional

from metaqueries.exceptions import AveragingError


class RingAverager:
    """Running mean over the most recent ``capacity`` non-empty samples.

    Slots that were never written, and slots written with ``None``, are
    holes: they are skipped by :meth:`average` rather than counted as zero.

    Example:
        >>> averager = RingAverager(2)
        >>> averager.push(1)
        >>> averager.push(2)
        >>> averager.average()
        1.5
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._slots: List[Optional[float]] = [None] * capacity
        self._pointer = 0

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def push(self, value: Optional[float]) -> None:
        """Record ``value``, overwriting the oldest slot once the ring is full."""
        self._slots[self._pointer] = value
        self._pointer = (self._pointer + 1) % len(self._slots)

    def average(self) -> float:
        """Return the mean of all non-empty slots.

        Raises:
            AveragingError: If every slot is empty.
        """
        filled = [value for value in self._slots if value is not None]
        if not filled:
            raise AveragingError(
                "cannot average an empty window",
                context={"capacity": self.capacity},
            )
        return sum(filled) / len(filled)

    def __getitem__(self, index: int) -> Optional[float]:
        return self._slots[index]

    def __len__(self) -> int:
        return sum(1 for value in self._slots if value is not None)

    def __repr__(self) -> str:
        return f"RingAverager(capacity={self.capacity}, filled={len(self)})"


__all__ = ["RingAverager"]
