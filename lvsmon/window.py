from __future__ import annotations

from collections import deque

# Loss percentage reported for a probe that timed out or could not be parsed.
# Indistinguishable from a measured 100% loss.
FULL_LOSS = 100


class SlidingWindowTracker:
    """Bounded FIFO of loss samples for one target.

    Not thread-safe: callers hold the target's guard across record/average.
    """

    def __init__(self, window_size: int):
        if int(window_size) < 1:
            raise ValueError("window_size must be >= 1")
        self.window_size = int(window_size)
        self._samples: deque[int] = deque()

    def record(self, sample: int) -> None:
        sample = int(sample)
        if not 0 <= sample <= FULL_LOSS:
            raise ValueError(f"loss sample out of range: {sample}")
        self._samples.append(sample)
        if len(self._samples) > self.window_size:
            self._samples.popleft()

    def average(self) -> int:
        """Integer mean of retained samples (truncated), 0 when empty."""
        if not self._samples:
            return 0
        return sum(self._samples) // len(self._samples)

    def samples(self) -> list[int]:
        return list(self._samples)

    def __len__(self) -> int:
        return len(self._samples)
