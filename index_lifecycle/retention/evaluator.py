"""Policy evaluator deciding rollover and deletion for a stream.

The evaluator is a pure decision function over a consistent snapshot of
the PolicyStore. It returns actions and never applies them.
"""

from datetime import datetime

from index_lifecycle.observability.logging import get_logger
from index_lifecycle.observability.metrics import MetricsManager
from index_lifecycle.retention.models import (
    DeleteAction,
    IndexRecord,
    IndexState,
    LifecycleAction,
    RetentionPolicy,
    RolloverAction,
    RolloverReason,
)
from index_lifecycle.retention.store import PolicyStore

logger = get_logger(__name__)


class PolicyEvaluator:
    """Evaluate retention policies against the records of a PolicyStore.

    Example:
        >>> evaluator = PolicyEvaluator(store)
        >>> actions = evaluator.evaluate("api", now)
    """

    def __init__(self, store: PolicyStore, metrics: MetricsManager | None = None) -> None:
        """Initialize the evaluator.

        Args:
            store: Store providing policies and index records
            metrics: Optional metrics manager
        """
        self.store = store
        self._metrics = metrics

    def evaluate(self, stream_name: str, now: datetime) -> list[LifecycleAction]:
        """Decide the lifecycle actions due for a stream at ``now``.

        The rollover action for the active generation (if due) comes first,
        followed by delete actions for expired rolled generations, oldest
        generation first.

        Args:
            stream_name: Stream to evaluate
            now: Reference time

        Returns:
            Ordered list of actions

        Raises:
            UnknownStreamError: If no policy is registered for the stream
        """
        if self._metrics:
            with self._metrics.time_evaluation(stream_name):
                actions = self._evaluate(stream_name, now)
            for action in actions:
                self._metrics.record_action_emitted(action)
        else:
            actions = self._evaluate(stream_name, now)

        logger.debug(
            "stream_evaluated",
            stream=stream_name,
            now=now.isoformat(),
            actions=len(actions),
        )
        return actions

    def _evaluate(self, stream_name: str, now: datetime) -> list[LifecycleAction]:
        policy, records = self.store.snapshot(stream_name)
        actions: list[LifecycleAction] = []

        for record in records:
            if record.state == IndexState.ACTIVE:
                reason = self.rollover_reason(policy, record, now)
                if reason is not None:
                    actions.append(RolloverAction(stream_name, record.generation, reason))
                break

        expired = [
            record
            for record in records
            if record.state == IndexState.ROLLED and record.age(now) >= policy.delete_min_age
        ]
        expired.sort(key=lambda r: r.generation)
        actions.extend(DeleteAction(stream_name, record.generation) for record in expired)
        return actions

    @staticmethod
    def rollover_reason(
        policy: RetentionPolicy,
        record: IndexRecord,
        now: datetime,
    ) -> RolloverReason | None:
        """Return the threshold an active record has breached, if any.

        Age takes precedence when both thresholds trip.
        """
        if record.age(now) >= policy.rollover_max_age:
            return RolloverReason.MAX_AGE
        if record.size_bytes >= policy.rollover_max_size:
            return RolloverReason.MAX_SIZE
        return None

    def evaluate_all(self, now: datetime) -> dict[str, list[LifecycleAction]]:
        """Evaluate every registered stream.

        Returns:
            Mapping of stream name to its ordered actions
        """
        return {stream: self.evaluate(stream, now) for stream in self.store.streams()}
