"""Observability package for the Index Lifecycle Engine.

This package provides:
- Structured JSON logging with correlation IDs
- Prometheus metrics for writes, evaluations and applied actions
"""

from index_lifecycle.observability.logging import (
    LogContext,
    StructuredLogger,
    correlation_id_scope,
    get_logger,
    setup_logging,
)
from index_lifecycle.observability.metrics import MetricsManager, get_metrics_manager

__all__ = [
    "LogContext",
    "StructuredLogger",
    "correlation_id_scope",
    "get_logger",
    "setup_logging",
    "MetricsManager",
    "get_metrics_manager",
]
