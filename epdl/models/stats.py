"""
Progress accounting for a segment download, including real-time speed.
"""

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProgressSnapshot:
    """A point-in-time view of an ongoing download."""

    downloaded_bytes: int
    estimated_total_bytes: int
    speed: float
    timestamp: float
    completed_segments: int = 0
    total_segments: int = 0

    @property
    def percentage(self) -> float:
        if self.estimated_total_bytes <= 0:
            return 0.0
        return min(100.0, self.downloaded_bytes / self.estimated_total_bytes * 100)

    @property
    def eta_seconds(self) -> float | None:
        if self.speed <= 0:
            return None
        return max(0, self.estimated_total_bytes - self.downloaded_bytes) / self.speed

    @property
    def finished(self) -> bool:
        return self.total_segments > 0 and self.completed_segments == self.total_segments


@dataclass
class ProgressAggregator:
    """
    Accumulates completed segment sizes into progress snapshots.

    All mutation goes through `record`, which is serialized by a lock so that
    concurrent workers never update the counters directly.
    """

    total_segments: int
    window_seconds: float = 5.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    downloaded_bytes: int = 0
    estimated_total_bytes: int = 0
    completed_segments: int = 0
    current_speed_bps: float = 0.0
    peak_speed_bps: float = 0.0
    _samples: deque = field(default_factory=deque, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self):
        self._samples.append((self.clock(), 0))

    async def record(self, size: int) -> ProgressSnapshot:
        """
        Registers one finished segment of `size` bytes.

        Args:
            size: The exact number of bytes written for the segment.

        Returns:
            The snapshot reflecting the new totals.
        """
        async with self._lock:
            self.downloaded_bytes += size
            self.completed_segments += 1
            self._update_estimate()
            self._update_speed()
            return self.snapshot()

    def _update_estimate(self) -> None:
        remaining = self.total_segments - self.completed_segments
        if remaining <= 0:
            # All sizes are known now
            self.estimated_total_bytes = self.downloaded_bytes
            return
        average = self.downloaded_bytes / self.completed_segments
        estimate = int(self.downloaded_bytes + average * remaining)
        self.estimated_total_bytes = max(self.estimated_total_bytes, estimate)

    def _update_speed(self) -> None:
        now = self.clock()
        self._samples.append((now, self.downloaded_bytes))
        # Keep one sample older than the window as the reference point
        while len(self._samples) > 2 and now - self._samples[1][0] > self.window_seconds:
            self._samples.popleft()

        oldest_time, oldest_bytes = self._samples[0]
        elapsed = now - oldest_time
        if elapsed > 0:
            self.current_speed_bps = (self.downloaded_bytes - oldest_bytes) / elapsed
            self.peak_speed_bps = max(self.peak_speed_bps, self.current_speed_bps)

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            downloaded_bytes=self.downloaded_bytes,
            estimated_total_bytes=self.estimated_total_bytes,
            speed=self.current_speed_bps,
            timestamp=time.time(),
            completed_segments=self.completed_segments,
            total_segments=self.total_segments,
        )
