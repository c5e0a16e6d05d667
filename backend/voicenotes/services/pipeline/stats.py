"""
Running pipeline statistics.

Counters per job status plus a sliding window of completed-job durations.
Registered as a JobStore listener, so it is updated inside the same
critical section as the state change it counts.
"""

import math
from collections import Counter, deque

from voicenotes.models.schemas import Job, JobStatus, PipelineStats


def percentile(values: list[float], pct: float) -> float:
    """Nearest-rank percentile of ``values`` (0.0 for an empty list)."""
    if not values:
        return 0.0
    ordered = sorted(values)
    rank = max(1, math.ceil(len(ordered) * pct / 100))
    return ordered[rank - 1]


class StatsTracker:
    """
    Aggregate counters and latency window.

    ``completed`` and ``failed`` are cumulative; they are not reduced when
    finished jobs are cleared from the store.

    Attributes:
        window_size: Number of recent completed durations kept
    """

    def __init__(self, window_size: int = 100):
        self.window_size = window_size
        self._counts: Counter[JobStatus] = Counter()
        self._durations: deque[float] = deque(maxlen=window_size)

    def on_transition(
        self,
        previous: JobStatus | None,
        current: JobStatus | None,
        job: Job,
    ) -> None:
        if previous is not None:
            self._counts[previous] -= 1
        if current is not None:
            self._counts[current] += 1
        if current == JobStatus.COMPLETED and job.processing_time_ms is not None:
            self._durations.append(job.processing_time_ms)

    def snapshot(self) -> PipelineStats:
        durations = list(self._durations)
        total = sum(durations)
        return PipelineStats(
            pending=self._counts[JobStatus.PENDING],
            processing=self._counts[JobStatus.PROCESSING],
            retrying=self._counts[JobStatus.RETRYING],
            completed=self._counts[JobStatus.COMPLETED],
            failed=self._counts[JobStatus.FAILED],
            total_processing_time=total,
            average_processing_time=total / len(durations) if durations else 0.0,
            p50_processing_time=percentile(durations, 50),
            p95_processing_time=percentile(durations, 95),
            window_size=len(durations),
        )
