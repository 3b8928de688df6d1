"""Telemetry utilities for logging, metrics, and timing.

This module provides centralized observability infrastructure including:
- Structured logging via structlog
- Prometheus metrics collection
- Performance measurement utilities
"""

import logging
import sys
import time
from datetime import datetime, timezone
from typing import Any

import structlog
from prometheus_client import Counter, Gauge, Histogram
from structlog.processors import JSONRenderer

# Prometheus metrics
OPERATION_COUNTER = Counter(
    "loomline_operations_total",
    "Total number of engine operations",
    ["operation", "status"],
)

OPERATION_LATENCY = Histogram(
    "loomline_operation_duration_seconds",
    "Operation latency in seconds",
    ["operation"],
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
)

HISTORY_DEPTH = Gauge(
    "loomline_history_depth",
    "Number of entries on the undo and redo stacks",
    ["stack"],
)

REGISTRY_SIZE = Gauge(
    "loomline_registry_size",
    "Number of records held by each registry",
    ["registry"],
)

_metrics_enabled = True


def set_metrics_enabled(enabled: bool) -> None:
    """Globally enable or disable metric recording."""
    global _metrics_enabled
    _metrics_enabled = enabled


def metrics_enabled() -> bool:
    return _metrics_enabled


def setup_logging(log_level: str = "INFO", log_format: str = "json") -> None:
    """Initialize structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: "json" for machine-readable lines, "text" for console output
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
        force=True,
    )

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format == "text":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **context: Any) -> Any:
    """Get a structured logger with optional context.

    Args:
        name: Logger name
        **context: Additional context to bind to logger

    Returns:
        Bound logger with context
    """
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


def log_operation(
    logger: Any,
    operation: str,
    status: str = "success",
    latency_ms: float | None = None,
    **extra_context: Any,
) -> None:
    """Log an operation with standardized fields for observability.

    Args:
        logger: Structured logger instance
        operation: Operation name
        status: Operation status (success, error, rejected)
        latency_ms: Operation latency in milliseconds
        **extra_context: Additional context fields
    """
    log_data = {
        "operation": operation,
        "status": status,
        **extra_context,
    }
    if latency_ms is not None:
        log_data["latency_ms"] = round(latency_ms, 3)

    if status == "error":
        logger.error("Operation completed", **log_data)
    elif status == "rejected":
        logger.debug("Operation completed", **log_data)
    else:
        logger.info("Operation completed", **log_data)


def record_operation(operation: str, status: str) -> None:
    """Count an operation outcome."""
    if _metrics_enabled:
        OPERATION_COUNTER.labels(operation=operation, status=status).inc()


def record_history_depth(undo_depth: int, redo_depth: int) -> None:
    if _metrics_enabled:
        HISTORY_DEPTH.labels(stack="undo").set(undo_depth)
        HISTORY_DEPTH.labels(stack="redo").set(redo_depth)


def record_registry_size(registry: str, size: int) -> None:
    if _metrics_enabled:
        REGISTRY_SIZE.labels(registry=registry).set(size)


def utc_now_iso() -> str:
    """Current wall-clock time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


class PerformanceTimer:
    """Context manager for measuring operation performance.

    Records the outcome counter and the latency histogram on exit and logs
    the timing through ``log_operation``. Exceptions are never swallowed.
    """

    def __init__(
        self,
        operation: str,
        logger: Any = None,
        record_metrics: bool = True,
        log: bool = False,
        **context: Any,
    ):
        self.operation = operation
        self.logger = logger or get_logger("loomline.performance")
        self.record_metrics = record_metrics
        self.log = log
        self.context = context
        self.start_time: float | None = None
        self.end_time: float | None = None

    def __enter__(self) -> "PerformanceTimer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.end_time = time.perf_counter()
        duration = self.end_time - (self.start_time or 0)

        status = "error" if exc_type else "success"

        if self.record_metrics and _metrics_enabled:
            OPERATION_COUNTER.labels(operation=self.operation, status=status).inc()
            OPERATION_LATENCY.labels(operation=self.operation).observe(duration)

        if self.log or exc_type:
            log_operation(
                self.logger,
                self.operation,
                status=status,
                latency_ms=duration * 1000,
                **self.context,
            )

    @property
    def duration(self) -> float | None:
        """Get operation duration in seconds."""
        if self.start_time is not None and self.end_time is not None:
            return self.end_time - self.start_time
        return None
