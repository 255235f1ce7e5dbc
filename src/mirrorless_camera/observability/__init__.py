"""Observability module for mirrorless-camera.

Provides structured logging and exposure statistics for monitoring
capture sessions.

Example:
    from mirrorless_camera.observability import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(device_id="ILCE-6400"):
        logger.info("Exposure started", sequence_id=1, duration_s=2.5)

Statistics Example:
    from mirrorless_camera.observability import ExposureStats

    stats = ExposureStats()
    session = SessionController(transport, stats=stats)

    summary = stats.get_summary()
    print(f"Success rate: {summary.success_rate:.1%}")
"""

from mirrorless_camera.observability.logging import (
    LogContext,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from mirrorless_camera.observability.stats import (
    ExposureOutcome,
    ExposureStats,
    StatsSummary,
)

__all__ = [
    # Logging
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Statistics
    "ExposureOutcome",
    "ExposureStats",
    "StatsSummary",
]
