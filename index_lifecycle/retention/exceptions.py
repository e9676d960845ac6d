"""Exceptions raised by the retention policy engine."""

from typing import Any


class LifecycleError(Exception):
    """Base exception for index lifecycle errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class InvalidPolicyError(LifecycleError):
    """Raised when a retention policy violates its contract."""
    pass


class UnknownStreamError(LifecycleError):
    """Raised when an operation references a stream with no policy."""

    def __init__(self, stream_name: str):
        super().__init__(
            f"No retention policy registered for stream: {stream_name}",
            {"stream_name": stream_name},
        )
        self.stream_name = stream_name


class UnknownGenerationError(LifecycleError):
    """Raised when an index generation does not exist for a stream."""

    def __init__(self, stream_name: str, generation: int):
        super().__init__(
            f"Stream {stream_name} has no index generation {generation}",
            {"stream_name": stream_name, "generation": generation},
        )
        self.stream_name = stream_name
        self.generation = generation


class InvalidTransitionError(LifecycleError):
    """Raised when a lifecycle transition is not allowed from the current state."""
    pass
