"""Prometheus metrics for the Index Lifecycle Engine.

This module tracks ingestion volume, evaluation activity and the outcome
of lifecycle actions applied to the index backend.
"""

import time
from contextlib import contextmanager
from typing import Generator, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Default registry
DEFAULT_REGISTRY = CollectorRegistry()

# =============================================================================
# Ingestion Metrics
# =============================================================================

STREAM_BYTES_WRITTEN = Counter(
    'lifecycle_stream_bytes_written_total',
    'Total number of bytes recorded as written per stream',
    ['stream'],
    registry=DEFAULT_REGISTRY,
)

STREAM_WRITES = Counter(
    'lifecycle_stream_writes_total',
    'Total number of write records per stream',
    ['stream'],
    registry=DEFAULT_REGISTRY,
)

ACTIVE_INDEX_SIZE = Gauge(
    'lifecycle_active_index_size_bytes',
    'Current size of the active index generation',
    ['stream'],
    registry=DEFAULT_REGISTRY,
)

# =============================================================================
# Evaluation Metrics
# =============================================================================

EVALUATION_DURATION = Histogram(
    'lifecycle_evaluation_duration_seconds',
    'Time spent evaluating a stream policy',
    ['stream'],
    buckets=[0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1],
    registry=DEFAULT_REGISTRY,
)

ACTIONS_EMITTED = Counter(
    'lifecycle_actions_emitted_total',
    'Total number of lifecycle actions emitted by the evaluator',
    ['stream', 'action', 'reason'],
    registry=DEFAULT_REGISTRY,
)

# =============================================================================
# Backend Metrics
# =============================================================================

ACTIONS_APPLIED = Counter(
    'lifecycle_actions_applied_total',
    'Total number of lifecycle actions applied, by outcome',
    ['stream', 'action', 'status'],
    registry=DEFAULT_REGISTRY,
)

BACKEND_ERRORS = Counter(
    'lifecycle_backend_errors_total',
    'Total number of index backend errors',
    ['stream', 'action', 'error_type'],
    registry=DEFAULT_REGISTRY,
)

MANAGED_INDICES = Gauge(
    'lifecycle_managed_indices',
    'Number of tracked index generations per state',
    ['stream', 'state'],
    registry=DEFAULT_REGISTRY,
)

CYCLE_DURATION = Histogram(
    'lifecycle_cycle_duration_seconds',
    'Time spent running a full lifecycle cycle for a stream',
    ['stream'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1, 2, 5, 10, 30, 60],
    registry=DEFAULT_REGISTRY,
)


# =============================================================================
# Metrics Manager
# =============================================================================

class MetricsManager:
    """Manages metrics collection and reporting.
    
    Example:
        >>> manager = MetricsManager()
        >>> manager.record_write("api", 512, 4096)
        >>> with manager.time_evaluation("api"):
        ...     evaluator.evaluate("api", now)
    """
    
    def __init__(self, registry: CollectorRegistry = DEFAULT_REGISTRY):
        """Initialize the metrics manager.
        
        Args:
            registry: Prometheus registry to use
        """
        self.registry = registry
    
    def record_write(self, stream: str, bytes_written: int, active_size: int) -> None:
        """Record bytes written to a stream.
        
        Args:
            stream: Stream name
            bytes_written: Bytes in this write
            active_size: Size of the active generation after the write
        """
        STREAM_WRITES.labels(stream=stream).inc()
        if bytes_written:
            STREAM_BYTES_WRITTEN.labels(stream=stream).inc(bytes_written)
        ACTIVE_INDEX_SIZE.labels(stream=stream).set(active_size)
    
    def set_active_size(self, stream: str, size: int) -> None:
        """Set the size of the active generation."""
        ACTIVE_INDEX_SIZE.labels(stream=stream).set(size)
    
    @contextmanager
    def time_evaluation(self, stream: str) -> Generator[None, None, None]:
        """Context manager to time a policy evaluation.
        
        Args:
            stream: Stream being evaluated
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            EVALUATION_DURATION.labels(stream=stream).observe(time.perf_counter() - start)
    
    @contextmanager
    def time_cycle(self, stream: str) -> Generator[None, None, None]:
        """Context manager to time a lifecycle cycle."""
        start = time.perf_counter()
        try:
            yield
        finally:
            CYCLE_DURATION.labels(stream=stream).observe(time.perf_counter() - start)
    
    def record_action_emitted(self, action) -> None:
        """Record an action emitted by the evaluator.
        
        Args:
            action: RolloverAction or DeleteAction
        """
        reason = getattr(action, "reason", None)
        ACTIONS_EMITTED.labels(
            stream=action.stream_name,
            action=action.action_type.value,
            reason=reason.value if reason else "expired",
        ).inc()
    
    def record_action_applied(self, stream: str, action: str, status: str) -> None:
        """Record the outcome of applying an action.
        
        Args:
            stream: Stream name
            action: Action type (rollover, delete)
            status: Outcome status
        """
        ACTIONS_APPLIED.labels(stream=stream, action=action, status=status).inc()
    
    def record_backend_error(self, stream: str, action: str, error_type: str) -> None:
        """Record an index backend error.
        
        Args:
            stream: Stream name
            action: Action type
            error_type: Exception class name or failure kind
        """
        BACKEND_ERRORS.labels(stream=stream, action=action, error_type=error_type).inc()
    
    def set_managed_indices(self, stream: str, counts: dict) -> None:
        """Set the number of tracked generations per state.
        
        Args:
            stream: Stream name
            counts: Mapping of IndexState to count
        """
        for state, count in counts.items():
            MANAGED_INDICES.labels(stream=stream, state=getattr(state, "value", state)).set(count)
    
    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus exposition format.
        
        Returns:
            Metrics as bytes in Prometheus format
        """
        return generate_latest(self.registry)
    
    @property
    def content_type(self) -> str:
        """Content type of the exposition format."""
        return CONTENT_TYPE_LATEST


# Global metrics manager instance
_metrics_manager: Optional[MetricsManager] = None


def get_metrics_manager() -> MetricsManager:
    """Get or create the global metrics manager.
    
    Returns:
        MetricsManager singleton instance
    """
    global _metrics_manager
    if _metrics_manager is None:
        _metrics_manager = MetricsManager()
    return _metrics_manager
