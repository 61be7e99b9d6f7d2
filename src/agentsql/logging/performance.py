"""Performance logging for agentsql operations.

Times connection opening and statement execution so slow databases show up
in the logs, and keeps per-operation aggregates that ``get_summary`` reports.

Classes:
    TimingMetrics: A single measurement
    OperationStats: Aggregated measurements for one operation
    TimingContext: Context manager for operation timing
    PerformanceLogger: Main performance logging interface

Example:
    >>> perf_logger = PerformanceLogger("agentsql.database.connection")
    >>> with perf_logger.measure("execute", kind="query") as timer:
    ...     native_cursor.execute("SELECT 1")
    >>> timer.duration_ms
    0.41
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, Optional

from .structured import StructuredLogger


@dataclass
class TimingMetrics:
    """Metrics for a single timing measurement."""
    operation: str
    start_time: float
    end_time: Optional[float] = None
    duration: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None

    def complete(self, success: bool = True, error: Optional[str] = None) -> None:
        """Mark timing as complete."""
        self.end_time = time.perf_counter()
        self.duration = self.end_time - self.start_time
        self.success = success
        self.error = error

    @property
    def duration_ms(self) -> Optional[float]:
        return self.duration * 1000 if self.duration is not None else None

    @property
    def is_complete(self) -> bool:
        return self.end_time is not None


@dataclass
class OperationStats:
    """Aggregated timing statistics for one operation name."""
    operation: str
    count: int = 0
    failures: int = 0
    total_time: float = 0.0
    max_time: float = 0.0

    def add_timing(self, timing: TimingMetrics) -> None:
        if timing.duration is None:
            return
        self.count += 1
        self.total_time += timing.duration
        self.max_time = max(self.max_time, timing.duration)
        if not timing.success:
            self.failures += 1

    @property
    def average_time(self) -> float:
        return self.total_time / self.count if self.count else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "count": self.count,
            "failures": self.failures,
            "average_ms": self.average_time * 1000,
            "max_ms": self.max_time * 1000,
        }


class TimingContext:
    """Context manager for measuring operation timing.

    Logs a debug line when the operation completes and an error line when it
    raises. Exceptions are never suppressed.
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[StructuredLogger] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.operation = operation
        self.logger = logger
        self.metadata = metadata or {}
        self._timing: Optional[TimingMetrics] = None

    @property
    def timing(self) -> Optional[TimingMetrics]:
        return self._timing

    @property
    def duration(self) -> Optional[float]:
        return self._timing.duration if self._timing else None

    @property
    def duration_ms(self) -> Optional[float]:
        return self._timing.duration_ms if self._timing else None

    def __enter__(self) -> "TimingContext":
        self._timing = TimingMetrics(
            operation=self.operation,
            start_time=time.perf_counter(),
            metadata=self.metadata,
        )
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._timing is None:
            return

        success = exc_type is None
        error = str(exc_val) if exc_val else None
        self._timing.complete(success=success, error=error)

        if self.logger is None:
            return
        if success:
            self.logger.debug(
                "Operation completed",
                operation=self.operation,
                duration_ms=self._timing.duration_ms,
                **self.metadata,
            )
        else:
            self.logger.error(
                "Operation failed",
                operation=self.operation,
                duration_ms=self._timing.duration_ms,
                error=error,
                **self.metadata,
            )


class PerformanceLogger:
    """Performance logger for timing session layer operations.

    Attributes:
        name: Logger name
        logger: Underlying structured logger

    Example:
        >>> perf_logger = PerformanceLogger("agentsql.database.pool")
        >>> with perf_logger.measure("open_connection", brand="sqlite"):
        ...     native = sqlite3.connect("sim.db")
        >>> perf_logger.get_summary()["open_connection"]["count"]
        1
    """

    def __init__(
        self,
        name: str,
        *,
        auto_log: bool = True,
        track_metrics: bool = True,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        """Initialize performance logger.

        Args:
            name: Logger name
            auto_log: Whether to automatically log timing results
            track_metrics: Whether to track aggregated metrics
            logger: Custom structured logger instance
        """
        self.name = name
        self.auto_log = auto_log
        self.track_metrics = track_metrics
        self.logger = logger or StructuredLogger(f"perf.{name}")
        self._metrics: Dict[str, OperationStats] = {}
        self._lock = threading.Lock()

    @contextmanager
    def measure(self, operation: str, **metadata: Any) -> Generator[TimingContext, None, None]:
        """Context manager for measuring operation performance.

        Args:
            operation: Operation name
            **metadata: Additional metadata included in the log lines

        Yields:
            TimingContext for the operation
        """
        timing_context = TimingContext(
            operation=operation,
            logger=self.logger if self.auto_log else None,
            metadata=metadata,
        )

        try:
            with timing_context as ctx:
                yield ctx
        finally:
            if self.track_metrics and timing_context.timing:
                self._add_timing(timing_context.timing)

    def _add_timing(self, timing: TimingMetrics) -> None:
        with self._lock:
            stats = self._metrics.get(timing.operation)
            if stats is None:
                stats = self._metrics[timing.operation] = OperationStats(timing.operation)
            stats.add_timing(timing)

    def get_summary(self) -> Dict[str, Dict[str, Any]]:
        """Get aggregated statistics keyed by operation name."""
        with self._lock:
            return {name: stats.to_dict() for name, stats in self._metrics.items()}

    def reset_metrics(self, operation: Optional[str] = None) -> None:
        """Reset metrics for one operation or for all of them."""
        with self._lock:
            if operation is None:
                self._metrics.clear()
            else:
                self._metrics.pop(operation, None)

    def __repr__(self) -> str:
        return f"PerformanceLogger(name={self.name!r}, operations={len(self._metrics)})"
