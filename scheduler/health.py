# ============================================================================
# SLIDING WINDOW HEALTH
# ============================================================================
# EPOCH: 1 - QUALITY-GATED WORKER
# STATUS: Scheduler - Recent-outcome health estimator
# PURPOSE: Fixed-capacity FIFO of job outcomes with a cold-start guard
# CREATED: 19 OCT 2026
# ============================================================================
"""
Sliding Window Health

Holds the last N job outcomes. The oldest sample is evicted first when
the window is full. The failure rate is reported as 0 until at least
min_sample_size samples exist, so a cold worker is not judged on one or
two unlucky jobs.
"""

from collections import deque
from typing import Deque, List

from core.models import HealthSample


class SlidingWindow:
    """FIFO window of HealthSamples."""

    def __init__(self, size: int = 10, min_sample_size: int = 3):
        if size < 1:
            raise ValueError("window size must be >= 1")
        self.size = size
        self.min_sample_size = min_sample_size
        self._samples: Deque[HealthSample] = deque(maxlen=size)

    def __len__(self) -> int:
        return len(self._samples)

    def record(self, success: bool, timestamp: float) -> None:
        self._samples.append(HealthSample(success=success, timestamp=timestamp))

    def clear(self) -> None:
        self._samples.clear()

    @property
    def samples(self) -> List[HealthSample]:
        """Samples oldest first."""
        return list(self._samples)

    @property
    def failures(self) -> int:
        return sum(1 for s in self._samples if not s.success)

    def failure_rate(self) -> float:
        """Failed / total, or 0.0 below the minimum sample size."""
        if len(self._samples) < self.min_sample_size or not self._samples:
            return 0.0
        return self.failures / len(self._samples)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = ["SlidingWindow"]
