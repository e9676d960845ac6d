"""Policy store holding retention policies and index records per stream.

The store is the single owner of mutable lifecycle state. Each stream has
its own lock so that writers to one stream serialise while writers to
different streams proceed independently.
"""

import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from index_lifecycle.observability.logging import get_logger
from index_lifecycle.observability.metrics import MetricsManager
from index_lifecycle.retention.exceptions import (
    InvalidPolicyError,
    InvalidTransitionError,
    UnknownGenerationError,
    UnknownStreamError,
)
from index_lifecycle.retention.models import (
    ActionStatus,
    IndexRecord,
    IndexState,
    ObservedIndex,
    RetentionPolicy,
)

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return the current timezone-aware UTC time."""
    return datetime.now(timezone.utc)


class _StreamState:
    """Policy, records and lock for one stream."""

    def __init__(self, policy: RetentionPolicy) -> None:
        self.policy = policy
        self.records: list[IndexRecord] = []
        self.lock = threading.RLock()

    def active_record(self) -> IndexRecord | None:
        for record in reversed(self.records):
            if record.state == IndexState.ACTIVE:
                return record
        return None

    def find(self, generation: int) -> IndexRecord | None:
        for record in self.records:
            if record.generation == generation:
                return record
        return None


class PolicyStore:
    """In-process store of retention policies and index records.

    Example:
        >>> store = PolicyStore()
        >>> store.register_policy(RetentionPolicy(
        ...     stream_name="api",
        ...     rollover_max_age="1d",
        ...     rollover_max_size="5gb",
        ...     delete_min_age="30d",
        ... ))
        >>> store.record_write("api", 1024)
        1024
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        metrics: MetricsManager | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source used to stamp newly created index records
            metrics: Optional metrics manager for write accounting
        """
        self._clock = clock
        self._metrics = metrics
        self._streams: dict[str, _StreamState] = {}
        self._lock = threading.Lock()

    def now(self) -> datetime:
        """Current time according to the store clock."""
        return self._clock()

    def _get_stream(self, stream_name: str) -> _StreamState:
        with self._lock:
            state = self._streams.get(stream_name)
        if state is None:
            raise UnknownStreamError(stream_name)
        return state

    def register_policy(self, policy: RetentionPolicy) -> None:
        """Insert or replace the policy for ``policy.stream_name``.

        Replacing a policy keeps the stream's existing index records.

        Args:
            policy: Retention policy to register

        Raises:
            InvalidPolicyError: If delete_min_age does not exceed rollover_max_age
        """
        problems = policy.violations()
        if problems:
            raise InvalidPolicyError(
                f"Invalid retention policy for stream {policy.stream_name}: "
                + "; ".join(problems),
                {"stream_name": policy.stream_name, "violations": problems},
            )

        with self._lock:
            state = self._streams.get(policy.stream_name)
            if state is None:
                self._streams[policy.stream_name] = _StreamState(policy)
                replaced = False
            else:
                replaced = True

        if replaced:
            with state.lock:
                state.policy = policy

        logger.info(
            "retention_policy_registered",
            stream=policy.stream_name,
            replaced=replaced,
            rollover_max_age=str(policy.rollover_max_age),
            rollover_max_size=policy.rollover_max_size,
            delete_min_age=str(policy.delete_min_age),
        )

    def get_policy(self, stream_name: str) -> RetentionPolicy:
        """Get the policy registered for a stream.

        Raises:
            UnknownStreamError: If no policy is registered
        """
        return self._get_stream(stream_name).policy

    def streams(self) -> list[str]:
        """Names of all registered streams, sorted."""
        with self._lock:
            return sorted(self._streams)

    def record_write(self, stream_name: str, bytes_written: int) -> int:
        """Account bytes written to the stream's active index.

        A fresh generation 0 record is created on the first write.

        Args:
            stream_name: Stream receiving the write
            bytes_written: Number of bytes written

        Returns:
            Size of the active record after the write

        Raises:
            UnknownStreamError: If no policy is registered for the stream
            ValueError: If bytes_written is negative
        """
        if bytes_written < 0:
            raise ValueError(f"bytes_written must be non-negative, got {bytes_written}")

        state = self._get_stream(stream_name)
        with state.lock:
            active = state.active_record()
            if active is None:
                generation = state.records[-1].generation + 1 if state.records else 0
                active = IndexRecord(
                    stream_name=stream_name,
                    generation=generation,
                    created_at=self._clock(),
                )
                state.records.append(active)
                logger.info("index_generation_created", stream=stream_name, generation=generation)
            active.size_bytes += bytes_written
            size = active.size_bytes

        if self._metrics:
            self._metrics.record_write(stream_name, bytes_written, size)
        return size

    def list_records(self, stream_name: str) -> list[IndexRecord]:
        """List copies of a stream's records in generation order.

        Unknown streams yield an empty list.
        """
        with self._lock:
            state = self._streams.get(stream_name)
        if state is None:
            return []
        with state.lock:
            return [replace(record) for record in state.records]

    def snapshot(self, stream_name: str) -> tuple[RetentionPolicy, list[IndexRecord]]:
        """Take a consistent copy of a stream's policy and records.

        Raises:
            UnknownStreamError: If no policy is registered for the stream
        """
        state = self._get_stream(stream_name)
        with state.lock:
            return state.policy, [replace(record) for record in state.records]

    def get_record(self, stream_name: str, generation: int) -> IndexRecord:
        """Get a copy of one index record.

        Raises:
            UnknownStreamError: If no policy is registered for the stream
            UnknownGenerationError: If the generation does not exist
        """
        state = self._get_stream(stream_name)
        with state.lock:
            record = state.find(generation)
            if record is None:
                raise UnknownGenerationError(stream_name, generation)
            return replace(record)

    def apply_rollover(
        self,
        stream_name: str,
        generation: int,
        now: datetime | None = None,
    ) -> ActionStatus:
        """Mark a generation as rolled and open the next active generation.

        Args:
            stream_name: Stream name
            generation: Generation to roll over
            now: Transition timestamp (defaults to the store clock)

        Returns:
            APPLIED, or ALREADY_ROLLED / ALREADY_DELETED when the
            generation has already left the ACTIVE state
        """
        now = now or self._clock()
        state = self._get_stream(stream_name)
        with state.lock:
            record = state.find(generation)
            if record is None:
                raise UnknownGenerationError(stream_name, generation)
            if record.state == IndexState.ROLLED:
                return ActionStatus.ALREADY_ROLLED
            if record.state == IndexState.DELETED:
                return ActionStatus.ALREADY_DELETED

            record.state = IndexState.ROLLED
            record.rolled_at = now
            next_generation = state.records[-1].generation + 1
            state.records.append(
                IndexRecord(
                    stream_name=stream_name,
                    generation=next_generation,
                    created_at=now,
                )
            )

        logger.info(
            "index_generation_rolled",
            stream=stream_name,
            generation=generation,
            next_generation=next_generation,
        )
        if self._metrics:
            self._metrics.set_active_size(stream_name, 0)
        return ActionStatus.APPLIED

    def apply_delete(
        self,
        stream_name: str,
        generation: int,
        now: datetime | None = None,
    ) -> ActionStatus:
        """Mark a rolled generation as deleted.

        Returns:
            APPLIED, or ALREADY_DELETED when the generation is already deleted

        Raises:
            InvalidTransitionError: If the generation is still ACTIVE
        """
        now = now or self._clock()
        state = self._get_stream(stream_name)
        with state.lock:
            record = state.find(generation)
            if record is None:
                raise UnknownGenerationError(stream_name, generation)
            if record.state == IndexState.DELETED:
                return ActionStatus.ALREADY_DELETED
            if record.state == IndexState.ACTIVE:
                raise InvalidTransitionError(
                    f"Cannot delete active index generation {generation} of stream {stream_name}",
                    {"stream_name": stream_name, "generation": generation},
                )
            record.state = IndexState.DELETED
            record.deleted_at = now

        logger.info("index_generation_deleted", stream=stream_name, generation=generation)
        return ActionStatus.APPLIED

    def sync_generations(
        self,
        stream_name: str,
        observed: list[ObservedIndex],
        now: datetime | None = None,
    ) -> dict[str, int]:
        """Reconcile a stream's records with the generations on the backend.

        Generations the store does not know yet are adopted, sizes of known
        generations are refreshed, and tracked generations missing from the
        backend are marked deleted. Only the newest observed generation is
        left ACTIVE.

        Args:
            stream_name: Stream name
            observed: Generations currently present on the backend
            now: Reconciliation timestamp (defaults to the store clock)

        Returns:
            Counts of adopted, rolled and deleted records

        Raises:
            UnknownStreamError: If no policy is registered for the stream
        """
        now = now or self._clock()
        by_generation = {index.generation: index for index in observed}
        newest = max(by_generation, default=None)
        counts = {"adopted": 0, "rolled": 0, "deleted": 0}
        active_size = None

        state = self._get_stream(stream_name)
        with state.lock:
            for generation in sorted(by_generation):
                index = by_generation[generation]
                record = state.find(generation)
                if record is None:
                    record = IndexRecord(
                        stream_name=stream_name,
                        generation=generation,
                        created_at=index.created_at,
                        size_bytes=index.size_bytes,
                        state=IndexState.ACTIVE if generation == newest else IndexState.ROLLED,
                    )
                    state.records.append(record)
                    counts["adopted"] += 1
                elif record.state != IndexState.DELETED:
                    record.size_bytes = index.size_bytes
                    if generation != newest and record.state == IndexState.ACTIVE:
                        record.state = IndexState.ROLLED
                        record.rolled_at = now
                        counts["rolled"] += 1
                if generation == newest and record.state == IndexState.ACTIVE:
                    active_size = record.size_bytes

            for record in state.records:
                if record.state != IndexState.DELETED and record.generation not in by_generation:
                    record.state = IndexState.DELETED
                    record.deleted_at = now
                    counts["deleted"] += 1

            state.records.sort(key=lambda r: r.generation)

        if any(counts.values()):
            logger.info("index_generations_synced", stream=stream_name, **counts)
        if self._metrics and active_size is not None:
            self._metrics.set_active_size(stream_name, active_size)
        return counts

    def purge_deleted(self, stream_name: str) -> int:
        """Drop metadata of deleted generations.

        Returns:
            Number of purged records
        """
        state = self._get_stream(stream_name)
        with state.lock:
            kept = [r for r in state.records if r.state != IndexState.DELETED]
            purged = len(state.records) - len(kept)
            # The newest generation number is preserved through the active record
            state.records = kept

        if purged:
            logger.info("deleted_generations_purged", stream=stream_name, count=purged)
        return purged

    def count_by_state(self, stream_name: str) -> dict[IndexState, int]:
        """Count a stream's records per lifecycle state."""
        counts = {s: 0 for s in IndexState}
        for record in self.list_records(stream_name):
            counts[record.state] += 1
        return counts
