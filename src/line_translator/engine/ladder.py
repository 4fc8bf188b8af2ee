"""
Batch size ladder.

Holds the configured batch sizes as a rotating list whose last element is the
active size. Shrinking rotates the last element to the front, growing rotates
the first element to the back, so the sizes are visited in order in both
directions.
"""

from typing import Optional, Sequence

import structlog

from line_translator.monitoring.metrics import batch_size_changes_total

logger = structlog.get_logger(__name__)


class BatchSizeLadder:
    """
    Adaptive batch size selector.

    Attributes:
        sizes: Configured sizes, ascending
        threshold: Successful reduced-size submissions to wait before growing
            (None at the largest size)
    """

    def __init__(self, sizes: Sequence[int]):
        sizes = list(sizes)
        if not sizes:
            raise ValueError("batch sizes must not be empty")
        if any(b <= a for a, b in zip(sizes, sizes[1:])):
            raise ValueError(f"batch sizes must be strictly ascending, got {sizes}")

        self.sizes = tuple(sizes)
        self._working = list(sizes)
        self.threshold: Optional[int] = None

    @property
    def current(self) -> int:
        return self._working[-1]

    @property
    def smallest(self) -> int:
        return self.sizes[0]

    @property
    def largest(self) -> int:
        return self.sizes[-1]

    def decrease(self) -> bool:
        """
        Step down to the next smaller size.

        Returns:
            False (state unchanged) when already at the smallest size
        """
        if self.current == self.smallest:
            return False
        old = self.current
        self._working.insert(0, self._working.pop())
        self._resized(old, "decrease")
        return True

    def increase(self) -> bool:
        """
        Step up to the next larger size.

        Returns:
            False (state unchanged) when already at the largest size
        """
        if self.current == self.largest:
            return False
        old = self.current
        self._working.append(self._working.pop(0))
        self._resized(old, "increase")
        return True

    def _resized(self, old: int, direction: str) -> None:
        new = self.current
        if new == self.largest:
            self.threshold = None
        else:
            self.threshold = max(old, new) // min(old, new)

        batch_size_changes_total.labels(direction=direction).inc()
        logger.info(
            "Batch size changed",
            direction=direction,
            old=old,
            new=new,
            threshold=self.threshold,
        )

    def __repr__(self) -> str:
        return f"BatchSizeLadder(sizes={list(self.sizes)}, current={self.current}, threshold={self.threshold})"
