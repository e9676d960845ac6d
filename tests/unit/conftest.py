"""Shared fixtures for unit tests."""

from datetime import datetime, timedelta, timezone

import pytest

from index_lifecycle.retention.models import RetentionPolicy
from index_lifecycle.retention.store import PolicyStore

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock for the policy store."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def t0():
    """Reference start time."""
    return T0


@pytest.fixture
def clock():
    """Create a controllable clock starting at T0."""
    return FakeClock()


@pytest.fixture
def api_policy():
    """Create the api stream policy (1d / 5gb / 30d)."""
    return RetentionPolicy(
        stream_name="api",
        rollover_max_age="1d",
        rollover_max_size="5gb",
        delete_min_age="30d",
        description="API service logs",
    )


@pytest.fixture
def store(clock, api_policy):
    """Create a PolicyStore with the api policy registered."""
    store = PolicyStore(clock=clock)
    store.register_policy(api_policy)
    return store
