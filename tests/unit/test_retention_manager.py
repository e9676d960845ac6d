"""Unit tests for the IndexLifecycleManager.

This module tests action application, failure handling and summaries.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from index_lifecycle.retention.exceptions import UnknownStreamError
from index_lifecycle.retention.manager import IndexLifecycleManager
from index_lifecycle.retention.models import (
    ActionStatus,
    ActionType,
    DeleteAction,
    IndexState,
    ObservedIndex,
    RolloverAction,
    RolloverReason,
)

# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def mock_backend():
    """Create a mock index backend."""
    backend = AsyncMock()
    backend.put_policy = AsyncMock(return_value=True)
    backend.rollover = AsyncMock(return_value=True)
    backend.delete = AsyncMock(return_value=True)
    return backend


@pytest.fixture
def manager(store, mock_backend):
    """Create a manager over the api store with a mocked backend."""
    return IndexLifecycleManager(store, backend=mock_backend)


@pytest.fixture
def expired_store(store, t0):
    """Store with generation 0 created at t0 and generation 1 opened at t0 + 20d."""
    store.record_write("api", 100)
    store.apply_rollover("api", 0, t0 + timedelta(days=20))
    return store


# ============================================================================
# run_cycle Tests
# ============================================================================

@pytest.mark.unit
class TestRunCycle:
    """Tests for running lifecycle cycles."""

    @pytest.mark.asyncio
    async def test_nothing_due(self, manager, store, mock_backend, t0):
        """Test a cycle with no due actions touches nothing."""
        store.record_write("api", 10)

        summary = await manager.run_cycle("api", t0 + timedelta(hours=1))

        assert summary["rolled_over"] == 0
        assert summary["deleted"] == 0
        assert summary["errors"] == []
        mock_backend.rollover.assert_not_called()
        mock_backend.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_rollover_and_delete_applied(self, manager, expired_store, mock_backend, t0):
        """Test due actions are applied to the backend and the store."""
        now = t0 + timedelta(days=31)

        summary = await manager.run_cycle("api", now)

        assert summary["stream"] == "api"
        assert summary["rolled_over"] == 1
        assert summary["deleted"] == 1
        assert summary["cycle_id"].startswith("cycle-")
        mock_backend.rollover.assert_awaited_once_with("api", 1)
        mock_backend.delete.assert_awaited_once_with("api", 0)

        states = [r.state for r in expired_store.list_records("api")]
        assert states == [IndexState.DELETED, IndexState.ROLLED, IndexState.ACTIVE]

    @pytest.mark.asyncio
    async def test_second_cycle_is_noop(self, manager, expired_store, mock_backend, t0):
        """Test re-running a cycle at the same time does nothing new."""
        now = t0 + timedelta(days=31)
        await manager.run_cycle("api", now)
        mock_backend.reset_mock()

        summary = await manager.run_cycle("api", now)

        assert summary["rolled_over"] == 0
        assert summary["deleted"] == 0
        mock_backend.rollover.assert_not_called()

    @pytest.mark.asyncio
    async def test_backend_rejection_leaves_store_unchanged(
        self, manager, expired_store, mock_backend, t0
    ):
        """Test a backend returning False is reported and not recorded."""
        mock_backend.delete.return_value = False
        before = expired_store.get_record("api", 0)

        summary = await manager.run_cycle("api", t0 + timedelta(days=31))

        assert summary["deleted"] == 0
        assert summary["rolled_over"] == 1
        assert len(summary["errors"]) == 1
        assert summary["errors"][0]["status"] == "failed"
        assert expired_store.get_record("api", 0) == before

    @pytest.mark.asyncio
    async def test_backend_exception_is_captured(self, manager, expired_store, mock_backend, t0):
        """Test backend exceptions are recorded and later actions still run."""
        mock_backend.rollover.side_effect = httpx.ConnectError("connection refused")

        summary = await manager.run_cycle("api", t0 + timedelta(days=31))

        assert summary["rolled_over"] == 0
        assert summary["deleted"] == 1
        assert summary["errors"][0]["error"] == "connection refused"
        assert expired_store.get_record("api", 1).state == IndexState.ACTIVE

    @pytest.mark.asyncio
    async def test_failed_action_is_reemitted_next_cycle(
        self, manager, expired_store, mock_backend, t0
    ):
        """Test a failed delete is retried by the next cycle, not internally."""
        mock_backend.delete.return_value = False
        now = t0 + timedelta(days=31)
        await manager.run_cycle("api", now)
        assert mock_backend.delete.await_count == 1

        mock_backend.delete.return_value = True
        summary = await manager.run_cycle("api", now)

        assert summary["deleted"] == 1
        assert mock_backend.delete.await_count == 2

    @pytest.mark.asyncio
    async def test_unknown_stream(self, manager, t0):
        """Test cycles on unregistered streams fail."""
        with pytest.raises(UnknownStreamError):
            await manager.run_cycle("unknown", t0)

    @pytest.mark.asyncio
    async def test_run_cycle_defaults_to_store_clock(self, manager, store, clock, mock_backend):
        """Test the store clock is used when no time is given."""
        store.record_write("api", 1)
        clock.advance(timedelta(days=2))

        summary = await manager.run_cycle("api")

        assert summary["evaluated_at"] == clock.now.isoformat()
        assert summary["rolled_over"] == 1

    @pytest.mark.asyncio
    async def test_run_all(self, manager, store, t0):
        """Test run_all produces one summary per stream."""
        store.record_write("api", 1)

        summaries = await manager.run_all(t0 + timedelta(days=2))

        assert [s["stream"] for s in summaries] == ["api"]
        assert summaries[0]["rolled_over"] == 1

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, store, mock_backend, expired_store, t0):
        """Test cycle outcomes are reported to metrics."""
        metrics = MagicMock()
        manager = IndexLifecycleManager(store, backend=mock_backend, metrics=metrics)

        await manager.run_cycle("api", t0 + timedelta(days=31))

        metrics.time_cycle.assert_called_once_with("api")
        metrics.record_action_applied.assert_any_call("api", "rollover", "applied")
        metrics.record_action_applied.assert_any_call("api", "delete", "applied")
        metrics.set_managed_indices.assert_called_once()


# ============================================================================
# apply_action Tests
# ============================================================================

@pytest.mark.unit
class TestApplyAction:
    """Tests for applying single actions."""

    @pytest.mark.asyncio
    async def test_rollover_already_rolled(self, manager, expired_store, mock_backend, t0):
        """Test applying a rollover to a rolled record is AlreadyRolled."""
        action = RolloverAction("api", 0, RolloverReason.MAX_AGE)

        result = await manager.apply_action(action, t0)

        assert result.status == ActionStatus.ALREADY_ROLLED
        mock_backend.rollover.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_already_deleted(self, manager, expired_store, mock_backend, t0):
        """Test applying a delete twice is AlreadyDeleted."""
        action = DeleteAction("api", 0)
        await manager.apply_action(action, t0 + timedelta(days=31))

        result = await manager.apply_action(action, t0 + timedelta(days=32))

        assert result.status == ActionStatus.ALREADY_DELETED
        assert mock_backend.delete.await_count == 1

    @pytest.mark.asyncio
    async def test_registered_handler_overrides_backend(self, manager, expired_store, mock_backend, t0):
        """Test action handlers take precedence over the backend."""
        handler = AsyncMock(return_value=True)
        manager.register_action_handler(ActionType.DELETE, handler)

        result = await manager.apply_action(DeleteAction("api", 0), t0 + timedelta(days=31))

        assert result.status == ActionStatus.APPLIED
        handler.assert_awaited_once_with("api", 0)
        mock_backend.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_backend_fails_action(self, expired_store, t0):
        """Test actions fail when neither backend nor handler exists."""
        manager = IndexLifecycleManager(expired_store)

        result = await manager.apply_action(RolloverAction("api", 1, RolloverReason.MAX_AGE), t0)

        assert result.status == ActionStatus.FAILED
        assert expired_store.get_record("api", 1).state == IndexState.ACTIVE


# ============================================================================
# Policy Tests
# ============================================================================

@pytest.mark.unit
class TestPolicies:
    """Tests for policy sync and summaries."""

    @pytest.mark.asyncio
    async def test_sync_policies(self, manager, mock_backend, api_policy):
        """Test every registered policy is pushed to the backend."""
        results = await manager.sync_policies()

        assert results == {"api": True}
        mock_backend.put_policy.assert_awaited_once_with(api_policy)

    @pytest.mark.asyncio
    async def test_sync_policies_failure(self, manager, mock_backend):
        """Test sync failures are reported per stream."""
        mock_backend.put_policy.side_effect = httpx.ReadTimeout("timed out")

        assert await manager.sync_policies() == {"api": False}

    @pytest.mark.asyncio
    async def test_sync_policies_without_backend(self, store):
        """Test sync is skipped when no backend is configured."""
        manager = IndexLifecycleManager(store)

        assert await manager.sync_policies() == {}

    def test_get_policy_summary(self, manager, store):
        """Test policy summary contents."""
        store.record_write("api", 1)

        summary = manager.get_policy_summary()
        api = summary["streams"][0]

        assert api["stream"] == "api"
        assert api["description"] == "API service logs"
        assert api["rollover_max_age_seconds"] == 86400
        assert api["delete_min_age_seconds"] == 30 * 86400
        assert api["rollover_max_size_bytes"] == 5 * 1024**3
        assert api["indices"] == {"active": 1, "rolled": 0, "deleted": 0}


# ============================================================================
# Backend Refresh Tests
# ============================================================================

@pytest.mark.unit
class TestRefreshFromBackend:
    """Tests for cycles that reconcile records with the backend first."""

    @pytest.fixture
    def refreshing_manager(self, store, mock_backend):
        """Create a manager that refreshes records before each cycle."""
        return IndexLifecycleManager(store, backend=mock_backend, refresh_from_backend=True)

    @pytest.mark.asyncio
    async def test_cycle_acts_on_backend_indices(self, refreshing_manager, store, mock_backend, t0):
        """Test indices found on the backend are rolled over and deleted without local writes."""
        mock_backend.list_generations = AsyncMock(return_value=[
            ObservedIndex(4, t0 - timedelta(days=40), 1024),
            ObservedIndex(5, t0 - timedelta(days=2), 10),
        ])

        summary = await refreshing_manager.run_cycle("api", t0)

        mock_backend.list_generations.assert_awaited_once_with("api")
        mock_backend.rollover.assert_awaited_once_with("api", 5)
        mock_backend.delete.assert_awaited_once_with("api", 4)
        assert summary["rolled_over"] == 1
        assert summary["deleted"] == 1
        assert [r.generation for r in store.list_records("api")] == [4, 5, 6]

    @pytest.mark.asyncio
    async def test_refresh_failure_skips_actions(self, refreshing_manager, store, mock_backend, t0):
        """Test no action is taken when the backend cannot be listed."""
        store.record_write("api", 10)
        mock_backend.list_generations = AsyncMock(side_effect=httpx.ConnectError("refused"))

        summary = await refreshing_manager.run_cycle("api", t0 + timedelta(days=2))

        assert summary["rolled_over"] == 0
        assert summary["errors"] == [{
            "action": "refresh",
            "stream_name": "api",
            "status": "failed",
            "error": "refused",
        }]
        mock_backend.rollover.assert_not_called()

    @pytest.mark.asyncio
    async def test_refresh_disabled_by_default(self, manager, store, mock_backend, t0):
        """Test plain managers never list backend generations."""
        mock_backend.list_generations = AsyncMock(return_value=[])
        store.record_write("api", 10)

        await manager.run_cycle("api", t0)

        mock_backend.list_generations.assert_not_called()
        assert len(store.list_records("api")) == 1

    @pytest.mark.asyncio
    async def test_refresh_records_without_backend(self, store, t0):
        """Test refreshing without a backend changes nothing."""
        manager = IndexLifecycleManager(store, refresh_from_backend=True)

        assert await manager.refresh_records("api", t0) == {"adopted": 0, "rolled": 0, "deleted": 0}
