"""Exposure statistics collection and reporting.

Provides metrics for capture sessions:
- Completed / aborted / failed exposure counts
- Stale completions discarded by sequence-id checks
- Exposure duration statistics (min, max, avg, p95)
- Rolling window for recent behaviour

Thread-safe: the transport completion thread and caller threads record
into the same collector.

Example:
    stats = ExposureStats()

    stats.record(ExposureOutcome.COMPLETED, duration_s=2.5)
    stats.record(ExposureOutcome.ABORTED)
    stats.record(ExposureOutcome.FAILED, error_type="usb_reset")

    summary = stats.get_summary()
    print(f"Success rate: {summary.success_rate:.1%}")
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

#: Default number of outcome records kept in the rolling window.
DEFAULT_STATS_WINDOW_SIZE: int = 1000


class ExposureOutcome(Enum):
    """How a triggered exposure ended."""

    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"
    STALE = "stale"  # completion arrived for a superseded sequence id


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


@dataclass
class StatsSummary:
    """Summary statistics for one capture session.

    Attributes:
        total_exposures: Exposures that reached an outcome (stale excluded).
        completed: Exposures that produced a frame.
        aborted: Exposures cancelled by abort/stop/disconnect.
        failed: Exposures abandoned after a transport fault.
        stale_discarded: Late completions rejected by sequence id.
        success_rate: completed / total_exposures (0.0 when none).
        min_duration_s: Shortest completed exposure.
        max_duration_s: Longest completed exposure.
        avg_duration_s: Mean completed exposure.
        p95_duration_s: 95th percentile of completed exposures.
        error_counts: Failure count by error type.
        last_outcome_time: Time of the last recorded outcome.
        uptime_seconds: Time since the collector was created or reset.
    """

    total_exposures: int = 0
    completed: int = 0
    aborted: int = 0
    failed: int = 0
    stale_discarded: int = 0
    success_rate: float = 0.0
    min_duration_s: float = 0.0
    max_duration_s: float = 0.0
    avg_duration_s: float = 0.0
    p95_duration_s: float = 0.0
    error_counts: dict[str, int] = field(default_factory=dict)
    last_outcome_time: datetime | None = None
    uptime_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert the summary to a JSON-serializable dictionary.

        Returns:
            Dictionary with every field; last_outcome_time as an ISO string
            or None.

        Example:
            >>> data = stats.get_summary().to_dict()
            >>> data["completed"]
            3
        """
        return {
            "total_exposures": self.total_exposures,
            "completed": self.completed,
            "aborted": self.aborted,
            "failed": self.failed,
            "stale_discarded": self.stale_discarded,
            "success_rate": self.success_rate,
            "min_duration_s": self.min_duration_s,
            "max_duration_s": self.max_duration_s,
            "avg_duration_s": self.avg_duration_s,
            "p95_duration_s": self.p95_duration_s,
            "error_counts": self.error_counts.copy(),
            "last_outcome_time": (
                self.last_outcome_time.isoformat() if self.last_outcome_time else None
            ),
            "uptime_seconds": self.uptime_seconds,
        }


@dataclass
class OutcomeRecord:
    """Single exposure outcome for the rolling window."""

    timestamp: float  # monotonic time
    outcome: ExposureOutcome
    duration_s: float


class ExposureStats:
    """Thread-safe statistics collector for exposure outcomes.

    Keeps cumulative counters plus a bounded window of records used for
    the duration statistics.
    """

    def __init__(self, window_size: int = DEFAULT_STATS_WINDOW_SIZE) -> None:
        """Create an empty collector.

        Args:
            window_size: Maximum outcome records retained for duration
                statistics. Older records are dropped first.
        """
        self._records: deque[OutcomeRecord] = deque(maxlen=window_size)
        self._counts: dict[ExposureOutcome, int] = {o: 0 for o in ExposureOutcome}
        self._error_counts: dict[str, int] = {}
        self._start_time = time.monotonic()
        self._last_outcome_time: datetime | None = None
        self._lock = threading.Lock()

    def record(
        self,
        outcome: ExposureOutcome,
        duration_s: float = 0.0,
        error_type: str | None = None,
    ) -> None:
        """Record how an exposure ended.

        Args:
            outcome: Outcome category.
            duration_s: Exposure duration in seconds. Only COMPLETED
                records feed the duration statistics.
            error_type: Failure category for FAILED outcomes. Defaults to
                "unknown" when a failure is recorded without one.

        Example:
            >>> stats.record(ExposureOutcome.COMPLETED, duration_s=30.0)
        """
        with self._lock:
            self._counts[outcome] += 1
            self._records.append(
                OutcomeRecord(
                    timestamp=time.monotonic(),
                    outcome=outcome,
                    duration_s=duration_s,
                )
            )
            if outcome is ExposureOutcome.FAILED:
                key = error_type or "unknown"
                self._error_counts[key] = self._error_counts.get(key, 0) + 1
            self._last_outcome_time = _utc_now()

    def get_summary(self) -> StatsSummary:
        """Compute summary statistics from counters and the rolling window.

        Returns:
            StatsSummary snapshot. Duration fields are 0.0 until the first
            completed exposure.
        """
        with self._lock:
            completed = self._counts[ExposureOutcome.COMPLETED]
            aborted = self._counts[ExposureOutcome.ABORTED]
            failed = self._counts[ExposureOutcome.FAILED]
            total = completed + aborted + failed

            durations = sorted(
                r.duration_s
                for r in self._records
                if r.outcome is ExposureOutcome.COMPLETED
            )

            summary = StatsSummary(
                total_exposures=total,
                completed=completed,
                aborted=aborted,
                failed=failed,
                stale_discarded=self._counts[ExposureOutcome.STALE],
                success_rate=completed / total if total else 0.0,
                error_counts=self._error_counts.copy(),
                last_outcome_time=self._last_outcome_time,
                uptime_seconds=time.monotonic() - self._start_time,
            )
            if durations:
                summary.min_duration_s = durations[0]
                summary.max_duration_s = durations[-1]
                summary.avg_duration_s = sum(durations) / len(durations)
                summary.p95_duration_s = _percentile(durations, 95)
            return summary

    def reset(self) -> None:
        """Clear all counters and records, restarting the uptime clock."""
        with self._lock:
            self._records.clear()
            self._counts = {o: 0 for o in ExposureOutcome}
            self._error_counts.clear()
            self._start_time = time.monotonic()
            self._last_outcome_time = None


def _percentile(sorted_data: list[float], p: float) -> float:
    """Calculate a percentile from pre-sorted data with linear interpolation.

    Args:
        sorted_data: Values sorted ascending. Empty input returns 0.0.
        p: Percentile in [0, 100].

    Returns:
        The interpolated percentile value.

    Raises:
        ValueError: If p is outside [0, 100].

    Example:
        >>> _percentile([1.0, 2.0, 3.0, 4.0, 5.0], 50)
        3.0
        >>> _percentile([100.0, 150.0, 200.0], 95)
        195.0
    """
    if not 0 <= p <= 100:
        raise ValueError(f"Percentile must be between 0 and 100, got {p}")

    if not sorted_data:
        return 0.0

    k = (len(sorted_data) - 1) * (p / 100)
    floor_idx = int(k)
    ceil_idx = min(floor_idx + 1, len(sorted_data) - 1)

    if floor_idx == ceil_idx:
        return sorted_data[floor_idx]

    fraction = k - floor_idx
    return sorted_data[floor_idx] * (1 - fraction) + sorted_data[ceil_idx] * fraction
