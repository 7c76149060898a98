"""Ring-buffer statistics over the interval between consecutive game ticks."""
from __future__ import annotations

import logging
import math
import time
from typing import Callable, List, Optional

IDEAL_TICK_MS = 600
WARMUP_TICKS = 15

ClockFn = Callable[[], int]


class TickQualityTracker:
    """Measures tick regularity against the ideal 600ms cadence.

    Deltas between ticks are kept in a fixed-size ring buffer and every statistic is
    derived from the buffer on demand. The first ``WARMUP_TICKS`` ticks after
    construction or ``reset()`` only advance the timestamp so the burst of irregular
    timing after a login or world hop never reaches the samples.
    """

    def __init__(
        self,
        sample_size: int,
        threshold_ms: int,
        *,
        clock: ClockFn = time.perf_counter_ns,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if sample_size <= 0:
            raise ValueError(f"sample_size must be positive, got {sample_size}")
        self._capacity = int(sample_size)
        self._buffer: List[int] = [0] * self._capacity
        self._head = 0
        self._count = 0
        self._last_tick_ns: Optional[int] = None
        self._threshold_ms = int(threshold_ms)
        self._warmup_remaining = WARMUP_TICKS
        self._clock = clock
        self._logger = logger or logging.getLogger("TickFixer.tracker")

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def count(self) -> int:
        return self._count

    @property
    def threshold_ms(self) -> int:
        return self._threshold_ms

    def set_threshold_ms(self, value: int) -> None:
        self._threshold_ms = int(value)

    def record_tick(self) -> None:
        """Call once per observed game tick, in event order."""
        now = self._clock()
        last = self._last_tick_ns
        self._last_tick_ns = now
        if last is None:
            return
        if self._warmup_remaining > 0:
            self._warmup_remaining -= 1
            if self._warmup_remaining == 0:
                self._logger.debug("Tick warm-up complete; recording samples")
            return
        delta_ms = (now - last) // 1_000_000
        self._buffer[self._head] = delta_ms
        self._head = (self._head + 1) % self._capacity
        if self._count < self._capacity:
            self._count += 1

    def is_waiting(self) -> bool:
        return self._warmup_remaining > 0

    def quality(self) -> float:
        """Percentage (0-100) of samples within ``threshold_ms`` of the ideal tick."""
        samples = self._samples()
        if not samples:
            return 100.0
        threshold = self._threshold_ms
        good = sum(1 for delta in samples if abs(delta - IDEAL_TICK_MS) <= threshold)
        return good * 100.0 / len(samples)

    def average_ms(self) -> float:
        samples = self._samples()
        if not samples:
            return float(IDEAL_TICK_MS)
        return sum(samples) / len(samples)

    def jitter_ms(self) -> float:
        """Population standard deviation of the sampled deltas."""
        samples = self._samples()
        if len(samples) < 2:
            return 0.0
        mean = sum(samples) / len(samples)
        variance = sum((delta - mean) ** 2 for delta in samples) / len(samples)
        return math.sqrt(variance)

    def last_delta_ms(self) -> int:
        if self._count == 0:
            return -1
        return self._buffer[(self._head - 1) % self._capacity]

    def reset(self) -> None:
        self._head = 0
        self._count = 0
        self._last_tick_ns = None
        self._warmup_remaining = WARMUP_TICKS

    def _samples(self) -> List[int]:
        # Valid cells are always the first ``count`` slots; the slice is the reader's snapshot.
        return self._buffer[: self._count]
