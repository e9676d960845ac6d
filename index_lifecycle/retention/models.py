"""Data model for the retention policy engine.

Policies are immutable Pydantic models, index records are mutable
dataclasses owned by the PolicyStore, and lifecycle actions are frozen
dataclasses returned by the PolicyEvaluator.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from index_lifecycle.retention.units import is_duration_string, parse_duration, parse_size


class IndexState(str, Enum):
    """State of a physical index generation."""
    ACTIVE = "active"    # Receiving writes
    ROLLED = "rolled"    # Closed for writes, awaiting expiry
    DELETED = "deleted"  # Removed from the backend, kept as metadata


class ActionType(str, Enum):
    """Lifecycle actions emitted by the evaluator."""
    ROLLOVER = "rollover"
    DELETE = "delete"


class RolloverReason(str, Enum):
    """Threshold that triggered a rollover."""
    MAX_AGE = "max_age"
    MAX_SIZE = "max_size"


class ActionStatus(str, Enum):
    """Outcome of applying a lifecycle action."""
    APPLIED = "applied"
    ALREADY_ROLLED = "already_rolled"
    ALREADY_DELETED = "already_deleted"
    FAILED = "failed"


class RetentionPolicy(BaseModel):
    """Rollover and deletion rules for a single log stream.

    Attributes:
        stream_name: Unique stream identifier (e.g. "api")
        rollover_max_age: Age after which the active index rolls over
        rollover_max_size: Size in bytes after which the active index rolls over
        delete_min_age: Age after creation at which a rolled index may be deleted
        description: Human-readable description
    """

    model_config = ConfigDict(frozen=True)

    stream_name: str = Field(min_length=1)
    rollover_max_age: timedelta
    rollover_max_size: int
    delete_min_age: timedelta
    description: str = ""

    @field_validator("rollover_max_age", "delete_min_age", mode="before")
    @classmethod
    def parse_time_units(cls, v: Any) -> Any:
        """Accept Elasticsearch time units alongside pydantic's formats."""
        if isinstance(v, str) and is_duration_string(v):
            return parse_duration(v)
        return v

    @field_validator("rollover_max_age", "delete_min_age")
    @classmethod
    def validate_positive_duration(cls, v: timedelta) -> timedelta:
        """Validate that durations are positive."""
        if v <= timedelta(0):
            raise ValueError(f"Duration must be positive, got {v}")
        return v

    @field_validator("rollover_max_size", mode="before")
    @classmethod
    def parse_byte_units(cls, v: Any) -> Any:
        """Accept Elasticsearch byte units such as ``5gb``."""
        if isinstance(v, str):
            return parse_size(v)
        return v

    @field_validator("rollover_max_size")
    @classmethod
    def validate_positive_size(cls, v: int) -> int:
        """Validate that the size threshold is positive."""
        if v <= 0:
            raise ValueError(f"Rollover size must be positive, got {v}")
        return v

    def violations(self) -> list[str]:
        """List cross-field contract violations of this policy.

        Returns:
            Violation messages, empty when the policy is valid
        """
        problems = []
        if self.delete_min_age <= self.rollover_max_age:
            problems.append(
                f"delete_min_age ({self.delete_min_age}) must exceed "
                f"rollover_max_age ({self.rollover_max_age})"
            )
        return problems


@dataclass
class IndexRecord:
    """One physical index generation within a stream.

    Attributes:
        stream_name: Owning stream
        generation: Monotonically increasing generation number
        created_at: When the generation became active
        size_bytes: Bytes written to the generation
        state: Current lifecycle state
        rolled_at: When the generation was rolled over
        deleted_at: When the generation was deleted
    """
    stream_name: str
    generation: int
    created_at: datetime
    size_bytes: int = 0
    state: IndexState = IndexState.ACTIVE
    rolled_at: datetime | None = None
    deleted_at: datetime | None = None

    def age(self, now: datetime) -> timedelta:
        """Age of the generation relative to ``now``."""
        return now - self.created_at

    def to_dict(self) -> dict[str, Any]:
        """Convert record to dictionary."""
        return {
            "stream_name": self.stream_name,
            "generation": self.generation,
            "created_at": self.created_at.isoformat(),
            "size_bytes": self.size_bytes,
            "state": self.state.value,
            "rolled_at": self.rolled_at.isoformat() if self.rolled_at else None,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }


@dataclass(frozen=True)
class ObservedIndex:
    """An index generation as reported by the backend."""
    generation: int
    created_at: datetime
    size_bytes: int = 0


@dataclass(frozen=True)
class RolloverAction:
    """Roll over the active index generation of a stream."""
    stream_name: str
    generation: int
    reason: RolloverReason
    action_type: ActionType = field(default=ActionType.ROLLOVER, init=False)


@dataclass(frozen=True)
class DeleteAction:
    """Delete an expired, rolled-over index generation."""
    stream_name: str
    generation: int
    action_type: ActionType = field(default=ActionType.DELETE, init=False)


LifecycleAction = Union[RolloverAction, DeleteAction]


@dataclass
class ActionResult:
    """Result of applying one lifecycle action.

    Attributes:
        action: The applied action
        status: Outcome status
        error: Error message when the action failed
    """
    action: LifecycleAction
    status: ActionStatus
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary."""
        data = {
            "action": self.action.action_type.value,
            "stream_name": self.action.stream_name,
            "generation": self.action.generation,
            "status": self.status.value,
            "error": self.error,
        }
        if isinstance(self.action, RolloverAction):
            data["reason"] = self.action.reason.value
        return data
