"""Unit tests for retention data models and unit helpers."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from index_lifecycle.retention.models import (
    ActionResult,
    ActionStatus,
    ActionType,
    DeleteAction,
    IndexRecord,
    IndexState,
    RetentionPolicy,
    RolloverAction,
    RolloverReason,
)
from index_lifecycle.retention.units import (
    format_duration,
    format_size,
    parse_duration,
    parse_size,
)

GIB = 1024**3


# ============================================================================
# Unit helper Tests
# ============================================================================

@pytest.mark.unit
class TestUnits:
    """Tests for Elasticsearch time and byte unit helpers."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("30d", timedelta(days=30)),
            ("12h", timedelta(hours=12)),
            ("15m", timedelta(minutes=15)),
            ("10s", timedelta(seconds=10)),
            ("500ms", timedelta(milliseconds=500)),
            ("1D", timedelta(days=1)),
        ],
    )
    def test_parse_duration(self, value, expected):
        """Test parsing Elasticsearch time values."""
        assert parse_duration(value) == expected

    def test_parse_duration_invalid(self):
        """Test invalid time values are rejected."""
        with pytest.raises(ValueError, match="Invalid time value"):
            parse_duration("thirty days")

    def test_format_duration_uses_largest_unit(self):
        """Test formatting picks the largest exact unit."""
        assert format_duration(timedelta(days=30)) == "30d"
        assert format_duration(timedelta(hours=36)) == "36h"
        assert format_duration(timedelta(seconds=90)) == "90s"
        assert format_duration(timedelta(milliseconds=1500)) == "1500ms"

    def test_parse_size(self):
        """Test parsing byte sizes."""
        assert parse_size("5gb") == 5 * GIB
        assert parse_size("512MB") == 512 * 1024**2
        assert parse_size("1.5kb") == 1536
        assert parse_size("2048") == 2048
        assert parse_size(100) == 100

    def test_parse_size_invalid(self):
        """Test invalid byte sizes are rejected."""
        with pytest.raises(ValueError, match="Invalid byte size"):
            parse_size("5 gigabytes")

    def test_format_size(self):
        """Test formatting byte sizes."""
        assert format_size(5 * GIB) == "5gb"
        assert format_size(1536) == "1536b"
        assert format_size(2048) == "2kb"


# ============================================================================
# RetentionPolicy Tests
# ============================================================================

@pytest.mark.unit
class TestRetentionPolicy:
    """Tests for RetentionPolicy model."""

    def test_policy_from_unit_strings(self):
        """Test creating a policy with Elasticsearch units."""
        policy = RetentionPolicy(
            stream_name="api",
            rollover_max_age="1d",
            rollover_max_size="5gb",
            delete_min_age="30d",
        )

        assert policy.rollover_max_age == timedelta(days=1)
        assert policy.rollover_max_size == 5 * GIB
        assert policy.delete_min_age == timedelta(days=30)
        assert policy.description == ""

    def test_policy_from_timedelta_and_seconds(self):
        """Test creating a policy with timedelta and numeric seconds."""
        policy = RetentionPolicy(
            stream_name="redis",
            rollover_max_age=timedelta(hours=1),
            rollover_max_size=1024,
            delete_min_age=3 * 86400,
        )

        assert policy.rollover_max_age == timedelta(hours=1)
        assert policy.delete_min_age == timedelta(days=3)

    def test_policy_is_immutable(self):
        """Test policies cannot be modified after creation."""
        policy = RetentionPolicy(
            stream_name="api",
            rollover_max_age="1d",
            rollover_max_size="5gb",
            delete_min_age="30d",
        )

        with pytest.raises(ValidationError):
            policy.delete_min_age = timedelta(days=1)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("rollover_max_age", "0d"),
            ("delete_min_age", -5),
            ("rollover_max_size", 0),
            ("stream_name", ""),
        ],
    )
    def test_policy_rejects_non_positive_values(self, field, value):
        """Test field-level validation."""
        data = {
            "stream_name": "api",
            "rollover_max_age": "1d",
            "rollover_max_size": "5gb",
            "delete_min_age": "30d",
        }
        data[field] = value

        with pytest.raises(ValidationError):
            RetentionPolicy(**data)

    def test_violations_empty_for_valid_policy(self):
        """Test a valid policy reports no violations."""
        policy = RetentionPolicy(
            stream_name="api",
            rollover_max_age="1d",
            rollover_max_size="5gb",
            delete_min_age="30d",
        )
        assert policy.violations() == []

    def test_violations_when_delete_not_after_rollover(self):
        """Test the cross-field invariant is reported, not raised."""
        policy = RetentionPolicy(
            stream_name="api",
            rollover_max_age="1d",
            rollover_max_size="5gb",
            delete_min_age="1d",
        )
        problems = policy.violations()

        assert len(problems) == 1
        assert "delete_min_age" in problems[0]


# ============================================================================
# IndexRecord and Action Tests
# ============================================================================

@pytest.mark.unit
class TestIndexRecord:
    """Tests for IndexRecord dataclass."""

    def test_defaults(self):
        """Test a new record is active and empty."""
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        record = IndexRecord(stream_name="api", generation=0, created_at=created)

        assert record.state == IndexState.ACTIVE
        assert record.size_bytes == 0
        assert record.rolled_at is None

    def test_age(self):
        """Test age is measured from creation."""
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        record = IndexRecord(stream_name="api", generation=0, created_at=created)

        assert record.age(created + timedelta(hours=5)) == timedelta(hours=5)

    def test_to_dict(self):
        """Test record serialization."""
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        record = IndexRecord(
            stream_name="api",
            generation=2,
            created_at=created,
            size_bytes=10,
            state=IndexState.ROLLED,
            rolled_at=created + timedelta(days=1),
        )
        data = record.to_dict()

        assert data["state"] == "rolled"
        assert data["generation"] == 2
        assert data["created_at"] == "2024-01-01T00:00:00+00:00"
        assert data["rolled_at"] == "2024-01-02T00:00:00+00:00"
        assert data["deleted_at"] is None


@pytest.mark.unit
class TestActions:
    """Tests for lifecycle action types."""

    def test_action_types(self):
        """Test each action carries its type."""
        assert RolloverAction("api", 0, RolloverReason.MAX_AGE).action_type == ActionType.ROLLOVER
        assert DeleteAction("api", 0).action_type == ActionType.DELETE

    def test_actions_are_value_objects(self):
        """Test actions compare by value."""
        assert DeleteAction("api", 3) == DeleteAction("api", 3)
        assert RolloverAction("api", 1, RolloverReason.MAX_SIZE) != RolloverAction(
            "api", 1, RolloverReason.MAX_AGE
        )

    def test_action_result_to_dict(self):
        """Test action result serialization includes the rollover reason."""
        result = ActionResult(
            RolloverAction("web", 4, RolloverReason.MAX_SIZE),
            ActionStatus.APPLIED,
        )
        data = result.to_dict()

        assert data == {
            "action": "rollover",
            "stream_name": "web",
            "generation": 4,
            "status": "applied",
            "error": None,
            "reason": "max_size",
        }
