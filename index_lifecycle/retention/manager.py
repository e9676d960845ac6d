"""Index lifecycle manager.

This module joins the PolicyStore, the PolicyEvaluator and an index
backend: it evaluates streams, applies the resulting actions through the
backend, and records successful transitions in the store.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Protocol
from uuid import uuid4

from index_lifecycle.observability.logging import LogContext, get_logger
from index_lifecycle.observability.metrics import MetricsManager
from index_lifecycle.retention.evaluator import PolicyEvaluator
from index_lifecycle.retention.models import (
    ActionResult,
    ActionStatus,
    ActionType,
    DeleteAction,
    IndexState,
    LifecycleAction,
    ObservedIndex,
    RetentionPolicy,
    RolloverAction,
)
from index_lifecycle.retention.store import PolicyStore

logger = get_logger(__name__)


class IndexBackend(Protocol):
    """Protocol for index storage backends."""

    async def put_policy(self, policy: RetentionPolicy) -> bool:
        """Install or update the lifecycle policy for a stream."""
        ...

    async def rollover(self, stream_name: str, generation: int) -> bool:
        """Roll over the active index of a stream."""
        ...

    async def delete(self, stream_name: str, generation: int) -> bool:
        """Delete one index generation of a stream."""
        ...

    async def list_generations(self, stream_name: str) -> list[ObservedIndex]:
        """List the index generations of a stream that exist on the backend."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...


ActionHandler = Callable[[str, int], Awaitable[bool]]


class IndexLifecycleManager:
    """Manager applying retention policies to an index backend.

    The manager never retries a failed action: a failed rollover leaves the
    generation ACTIVE and a failed delete leaves it ROLLED, so the next
    cycle re-emits the same action.

    With ``refresh_from_backend`` every cycle first reconciles the store
    with the generations the backend reports, so a process that never sees
    writes still tracks the real indices.

    Example:
        manager = IndexLifecycleManager(store, backend=DryRunBackend())
        summary = await manager.run_cycle("api")
    """

    def __init__(
        self,
        store: PolicyStore,
        backend: IndexBackend | None = None,
        evaluator: PolicyEvaluator | None = None,
        metrics: MetricsManager | None = None,
        refresh_from_backend: bool = False,
    ):
        """Initialize lifecycle manager.

        Args:
            store: Policy store owning the lifecycle state
            backend: Backend applying actions to physical indices
            evaluator: Policy evaluator (defaults to one over ``store``)
            metrics: Optional metrics manager
            refresh_from_backend: Sync records from the backend before each cycle
        """
        self.store = store
        self.backend = backend
        self.metrics = metrics
        self.refresh_from_backend = refresh_from_backend
        self.evaluator = evaluator or PolicyEvaluator(store, metrics=metrics)
        self._action_handlers: dict[ActionType, ActionHandler] = {}

    def register_action_handler(
        self,
        action: ActionType,
        handler: ActionHandler,
    ) -> None:
        """Register a handler overriding the backend for one action type.

        Args:
            action: Action type
            handler: Async callable taking (stream_name, generation)
        """
        self._action_handlers[action] = handler

    async def sync_policies(self) -> dict[str, bool]:
        """Install every registered policy on the backend.

        Returns:
            Mapping of stream name to success
        """
        results: dict[str, bool] = {}
        if self.backend is None:
            logger.warning("no_backend_for_policy_sync")
            return results

        for stream in self.store.streams():
            policy = self.store.get_policy(stream)
            try:
                results[stream] = await self.backend.put_policy(policy)
            except Exception as e:
                logger.error("policy_sync_failed", stream=stream, error=str(e))
                results[stream] = False
        return results

    async def refresh_records(
        self,
        stream_name: str,
        now: datetime | None = None,
    ) -> dict[str, int]:
        """Reconcile a stream's records with the generations on the backend.

        Returns:
            Counts of adopted, rolled and deleted records
        """
        if self.backend is None:
            return {"adopted": 0, "rolled": 0, "deleted": 0}
        observed = await self.backend.list_generations(stream_name)
        return self.store.sync_generations(stream_name, observed, now)

    async def run_cycle(
        self,
        stream_name: str,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Evaluate a stream and apply the resulting actions.

        Args:
            stream_name: Stream to process
            now: Reference time (defaults to the store clock)

        Returns:
            Summary of actions taken

        Raises:
            UnknownStreamError: If no policy is registered for the stream
        """
        now = now or self.store.now()
        cycle_id = f"cycle-{uuid4().hex[:12]}"

        with LogContext(correlation_id=cycle_id, stream=stream_name):
            if self.metrics:
                with self.metrics.time_cycle(stream_name):
                    summary = await self._run_cycle(stream_name, now, cycle_id)
                self.metrics.set_managed_indices(
                    stream_name, self.store.count_by_state(stream_name)
                )
            else:
                summary = await self._run_cycle(stream_name, now, cycle_id)

        return summary

    async def _run_cycle(
        self,
        stream_name: str,
        now: datetime,
        cycle_id: str,
    ) -> dict[str, Any]:
        summary: dict[str, Any] = {
            "cycle_id": cycle_id,
            "stream": stream_name,
            "evaluated_at": now.isoformat(),
            "rolled_over": 0,
            "deleted": 0,
            "already_applied": 0,
            "results": [],
            "errors": [],
        }

        if self.refresh_from_backend:
            try:
                await self.refresh_records(stream_name, now)
            except Exception as e:
                # Records may be stale, so no action is taken this cycle
                logger.error("generation_refresh_failed", error=str(e))
                if self.metrics:
                    self.metrics.record_backend_error(stream_name, "refresh", type(e).__name__)
                summary["errors"].append({
                    "action": "refresh",
                    "stream_name": stream_name,
                    "status": ActionStatus.FAILED.value,
                    "error": str(e),
                })
                return summary

        actions = self.evaluator.evaluate(stream_name, now)
        logger.info("lifecycle_cycle_started", actions=len(actions), now=now.isoformat())

        for action in actions:
            result = await self.apply_action(action, now)
            summary["results"].append(result.to_dict())
            if result.status == ActionStatus.APPLIED:
                if action.action_type == ActionType.ROLLOVER:
                    summary["rolled_over"] += 1
                else:
                    summary["deleted"] += 1
            elif result.status == ActionStatus.FAILED:
                summary["errors"].append(result.to_dict())
            else:
                summary["already_applied"] += 1

        logger.info(
            "lifecycle_cycle_completed",
            rolled_over=summary["rolled_over"],
            deleted=summary["deleted"],
            already_applied=summary["already_applied"],
            errors=len(summary["errors"]),
        )
        return summary

    async def run_all(self, now: datetime | None = None) -> list[dict[str, Any]]:
        """Run a lifecycle cycle for every registered stream.

        Returns:
            One summary per stream
        """
        now = now or self.store.now()
        return [await self.run_cycle(stream, now) for stream in self.store.streams()]

    async def apply_action(self, action: LifecycleAction, now: datetime) -> ActionResult:
        """Apply a single action through the backend and record it in the store.

        Args:
            action: Action to apply
            now: Transition timestamp

        Returns:
            Action result
        """
        record = self.store.get_record(action.stream_name, action.generation)
        if record.state == IndexState.DELETED:
            result = ActionResult(action, ActionStatus.ALREADY_DELETED)
        elif isinstance(action, RolloverAction) and record.state == IndexState.ROLLED:
            result = ActionResult(action, ActionStatus.ALREADY_ROLLED)
        else:
            result = await self._apply_to_backend(action, now)

        if self.metrics:
            self.metrics.record_action_applied(
                action.stream_name, action.action_type.value, result.status.value
            )
        return result

    async def _apply_to_backend(self, action: LifecycleAction, now: datetime) -> ActionResult:
        logger.info(
            "applying_lifecycle_action",
            action=action.action_type.value,
            generation=action.generation,
        )
        try:
            if isinstance(action, RolloverAction):
                success = await self._rollover(action.stream_name, action.generation)
            elif isinstance(action, DeleteAction):
                success = await self._delete(action.stream_name, action.generation)
            else:
                logger.warning("unknown_lifecycle_action", action=repr(action))
                return ActionResult(action, ActionStatus.FAILED, "unknown action")
        except Exception as e:
            logger.error(
                "lifecycle_action_failed",
                action=action.action_type.value,
                generation=action.generation,
                error=str(e),
            )
            if self.metrics:
                self.metrics.record_backend_error(
                    action.stream_name, action.action_type.value, type(e).__name__
                )
            return ActionResult(action, ActionStatus.FAILED, str(e))

        if not success:
            logger.warning(
                "lifecycle_action_rejected",
                action=action.action_type.value,
                generation=action.generation,
            )
            if self.metrics:
                self.metrics.record_backend_error(
                    action.stream_name, action.action_type.value, "rejected"
                )
            return ActionResult(action, ActionStatus.FAILED, "backend reported failure")

        if isinstance(action, RolloverAction):
            status = self.store.apply_rollover(action.stream_name, action.generation, now)
        else:
            status = self.store.apply_delete(action.stream_name, action.generation, now)
        return ActionResult(action, status)

    async def _rollover(self, stream_name: str, generation: int) -> bool:
        if ActionType.ROLLOVER in self._action_handlers:
            return await self._action_handlers[ActionType.ROLLOVER](stream_name, generation)

        if self.backend:
            return await self.backend.rollover(stream_name, generation)

        logger.warning("no_handler_for_rollover", generation=generation)
        return False

    async def _delete(self, stream_name: str, generation: int) -> bool:
        if ActionType.DELETE in self._action_handlers:
            return await self._action_handlers[ActionType.DELETE](stream_name, generation)

        if self.backend:
            return await self.backend.delete(stream_name, generation)

        logger.warning("no_handler_for_delete", generation=generation)
        return False

    def get_policy_summary(self) -> dict[str, Any]:
        """Get a summary of registered policies and tracked generations.

        Returns:
            Policy summary
        """
        streams = []
        for stream in self.store.streams():
            policy = self.store.get_policy(stream)
            counts = self.store.count_by_state(stream)
            streams.append({
                "stream": stream,
                "description": policy.description,
                "rollover_max_age_seconds": policy.rollover_max_age.total_seconds(),
                "rollover_max_size_bytes": policy.rollover_max_size,
                "delete_min_age_seconds": policy.delete_min_age.total_seconds(),
                "indices": {state.value: count for state, count in counts.items()},
            })
        return {"streams": streams}
