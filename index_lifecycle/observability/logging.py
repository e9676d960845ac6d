"""Structured logging configuration for the Index Lifecycle Engine.

This module provides structured JSON logging with correlation ID tracking
and per-cycle log context, built on structlog.
"""

import logging
import sys
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import FilteringBoundLogger

# Context variables for cycle tracking
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


class StructuredLogger:
    """Structured JSON logging manager.
    
    Example:
        >>> logger = StructuredLogger()
        >>> logger.setup_logging(json_format=True)
        >>> log = logger.get_logger("my_module")
        >>> log.info("index_rolled", stream="api")
    """

    def __init__(self):
        """Initialize the structured logger."""
        self._configured = False

    def setup_logging(
        self,
        json_format: bool = True,
        log_level: str = "INFO",
    ) -> None:
        """Setup structured logging configuration.
        
        Args:
            json_format: Whether to output JSON format (vs. console)
            log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        """
        if self._configured:
            return

        logging.basicConfig(
            format="%(message)s",
            stream=sys.stdout,
            level=getattr(logging, log_level.upper()),
        )
        logging.getLogger().setLevel(log_level.upper())

        processors = [
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            self._add_correlation_id,
            self._add_log_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]

        if json_format:
            processors.append(structlog.processors.JSONRenderer())
        else:
            processors.append(structlog.dev.ConsoleRenderer())

        structlog.configure(
            processors=processors,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        self._configured = True

    def _add_correlation_id(
        self,
        logger: FilteringBoundLogger,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        """Add correlation ID to log events."""
        corr_id = _correlation_id.get()
        if corr_id:
            event_dict["correlation_id"] = corr_id
        return event_dict

    def _add_log_context(
        self,
        logger: FilteringBoundLogger,
        method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        """Add the current log context to log events.
        
        Explicit event fields win over context values.
        """
        context = _log_context.get()
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    def get_logger(self, name: str) -> FilteringBoundLogger:
        """Get a logger instance.
        
        Args:
            name: Logger name (usually module name)
            
        Returns:
            Configured structlog logger
        """
        if not self._configured:
            self.setup_logging()
        return structlog.get_logger(name)


# Global logger instance
_structured_logger: StructuredLogger | None = None


def get_logger(name: str) -> FilteringBoundLogger:
    """Get a structured logger.
    
    Args:
        name: Logger name
        
    Returns:
        Structured logger instance
    """
    global _structured_logger
    if _structured_logger is None:
        _structured_logger = StructuredLogger()
    return _structured_logger.get_logger(name)


def setup_logging(
    json_format: bool = True,
    log_level: str = "INFO",
) -> StructuredLogger:
    """Setup structured logging globally.
    
    Args:
        json_format: Whether to output JSON
        log_level: Minimum log level
        
    Returns:
        Configured StructuredLogger
    """
    global _structured_logger
    _structured_logger = StructuredLogger()
    _structured_logger.setup_logging(
        json_format=json_format,
        log_level=log_level,
    )
    return _structured_logger


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get the current correlation ID."""
    return _correlation_id.get()


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current log context."""
    return dict(_log_context.get())


def clear_log_context() -> None:
    """Clear the log context."""
    _log_context.set({})


@contextmanager
def correlation_id_scope(correlation_id: str) -> Generator[None, None, None]:
    """Context manager for correlation ID scope.
    
    Example:
        >>> with correlation_id_scope("cycle-123"):
        ...     logger.info("evaluating")
    """
    token = _correlation_id.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id.reset(token)


class LogContext:
    """Context manager setting correlation ID and context values together.
    
    Nested contexts extend the enclosing one.
    
    Example:
        >>> with LogContext(correlation_id="cycle-123", stream="api"):
        ...     logger.info("lifecycle_cycle_started")
    """

    def __init__(self, correlation_id: str | None = None, **context: Any):
        self.correlation_id = correlation_id
        self.context = context
        self.tokens = []

    def __enter__(self) -> "LogContext":
        if self.correlation_id:
            self.tokens.append(("corr", _correlation_id.set(self.correlation_id)))
        if self.context:
            merged = {**_log_context.get(), **self.context}
            self.tokens.append(("ctx", _log_context.set(merged)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for name, token in reversed(self.tokens):
            if name == "corr":
                _correlation_id.reset(token)
            elif name == "ctx":
                _log_context.reset(token)
        self.tokens = []
