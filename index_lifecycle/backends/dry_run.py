"""Backend that logs lifecycle actions without touching any cluster."""

from collections.abc import Callable
from datetime import datetime, timezone

from index_lifecycle.observability.logging import get_logger
from index_lifecycle.retention.ilm import build_policy_document
from index_lifecycle.retention.models import ObservedIndex, RetentionPolicy

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DryRunBackend:
    """Index backend that records and logs actions, always succeeding.

    Each stream is simulated as a set of index generations: the first
    listing bootstraps generation 0, rollovers open the next generation and
    deletes remove one.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self.applied: list[tuple[str, str, int | None]] = []
        self._clock = clock
        self._indices: dict[str, dict[int, ObservedIndex]] = {}

    async def put_policy(self, policy: RetentionPolicy) -> bool:
        self.applied.append(("put_policy", policy.stream_name, None))
        logger.info(
            "dry_run_put_policy",
            stream=policy.stream_name,
            body=build_policy_document(policy, include_actions=False),
        )
        return True

    async def rollover(self, stream_name: str, generation: int) -> bool:
        self.applied.append(("rollover", stream_name, generation))
        indices = self._indices.setdefault(stream_name, {})
        indices[generation + 1] = ObservedIndex(generation + 1, self._clock())
        logger.info("dry_run_rollover", stream=stream_name, generation=generation)
        return True

    async def delete(self, stream_name: str, generation: int) -> bool:
        self.applied.append(("delete", stream_name, generation))
        self._indices.get(stream_name, {}).pop(generation, None)
        logger.info("dry_run_delete", stream=stream_name, generation=generation)
        return True

    async def list_generations(self, stream_name: str) -> list[ObservedIndex]:
        indices = self._indices.setdefault(stream_name, {})
        if not indices:
            indices[0] = ObservedIndex(0, self._clock())
            logger.info("dry_run_index_bootstrapped", stream=stream_name)
        return [indices[g] for g in sorted(indices)]

    async def close(self) -> None:
        pass
