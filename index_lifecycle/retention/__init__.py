"""Retention policy engine for per-stream log indices.

This package decides when a stream's active index rolls over and when
rolled-over indices expire, and applies those decisions to a backend.
"""

from index_lifecycle.retention.evaluator import PolicyEvaluator
from index_lifecycle.retention.exceptions import (
    InvalidPolicyError,
    InvalidTransitionError,
    LifecycleError,
    UnknownGenerationError,
    UnknownStreamError,
)
from index_lifecycle.retention.ilm import build_policy_document
from index_lifecycle.retention.manager import IndexBackend, IndexLifecycleManager
from index_lifecycle.retention.models import (
    ActionResult,
    ActionStatus,
    ActionType,
    DeleteAction,
    IndexRecord,
    IndexState,
    LifecycleAction,
    ObservedIndex,
    RetentionPolicy,
    RolloverAction,
    RolloverReason,
)
from index_lifecycle.retention.store import PolicyStore

__all__ = [
    "ActionResult",
    "ActionStatus",
    "ActionType",
    "DeleteAction",
    "IndexBackend",
    "IndexLifecycleManager",
    "IndexRecord",
    "IndexState",
    "InvalidPolicyError",
    "InvalidTransitionError",
    "LifecycleAction",
    "LifecycleError",
    "ObservedIndex",
    "PolicyEvaluator",
    "PolicyStore",
    "RetentionPolicy",
    "RolloverAction",
    "RolloverReason",
    "UnknownGenerationError",
    "UnknownStreamError",
    "build_policy_document",
]
