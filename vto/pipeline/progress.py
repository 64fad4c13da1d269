import time
from typing import Callable, Optional
from vto.domain.models import ProgressSnapshot, TelemetrySource, TimeMarker

class ProgressState:
    """Mutable progress of one job; only ProgressTracker writes it."""

    def __init__(self, started_at: float):
        self.started_at = started_at
        self.processed_ms = 0
        self.fraction = 0.0
        self.eta_seconds: Optional[float] = None
        self.size_bytes: Optional[int] = None
        self.statistics_seen = False

class ProgressTracker:
    """Accumulates time markers into a monotonic fraction and an ETA.

    Not thread-safe by itself: the orchestrator feeds it under the job lock.
    """

    def __init__(
        self,
        duration_ms: Optional[int],
        eta_threshold: float = 0.05,
        prefer_statistics: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.duration_ms = duration_ms if duration_ms and duration_ms > 0 else None
        self.eta_threshold = eta_threshold
        self.prefer_statistics = prefer_statistics
        self._clock = clock
        self._state = ProgressState(started_at=clock())

    def ignores(self, marker: TimeMarker) -> bool:
        """True when update() would leave the state untouched for this marker."""
        # The structured channel is authoritative once it has spoken
        return (
            marker.source == TelemetrySource.LOG
            and self.prefer_statistics
            and self._state.statistics_seen
        )

    def update(self, marker: TimeMarker) -> ProgressSnapshot:
        state = self._state

        if self.ignores(marker):
            return self.snapshot()
        if marker.source == TelemetrySource.STATISTICS:
            state.statistics_seen = True
            if marker.size_bytes is not None:
                state.size_bytes = max(state.size_bytes or 0, marker.size_bytes)

        state.processed_ms = max(state.processed_ms, marker.elapsed_ms)

        if self.duration_ms:
            fraction = min(max(state.processed_ms / self.duration_ms, 0.0), 1.0)
            state.fraction = max(state.fraction, fraction)

        elapsed = self._elapsed()
        if state.fraction > self.eta_threshold:
            total_estimate = elapsed / state.fraction
            state.eta_seconds = max(total_estimate - elapsed, 0.0)

        return self.snapshot()

    def snapshot(self) -> ProgressSnapshot:
        state = self._state
        return ProgressSnapshot(
            fraction=state.fraction,
            processed_ms=state.processed_ms,
            duration_ms=self.duration_ms,
            eta_seconds=state.eta_seconds,
            size_bytes=state.size_bytes,
            elapsed_seconds=self._elapsed(),
        )

    def _elapsed(self) -> float:
        return max(self._clock() - self._state.started_at, 0.0)
