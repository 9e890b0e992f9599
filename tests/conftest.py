# tests/conftest.py
"""
Shared fixtures for the tracking tests.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Iterator

import pytest

# Environment must be set before triptrack modules are imported
os.environ.setdefault("PERSISTENCE_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("UDP_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from triptrack.DB.session import init_db, make_engine, make_session_factory  # noqa: E402
from triptrack.Services.broadcaster import FixBroadcaster  # noqa: E402
from triptrack.Services.device_state import DeviceStateStore  # noqa: E402
from triptrack.Services.persistence_worker import TripWriter  # noqa: E402
from triptrack.Services.tracking import TrackingService  # noqa: E402
from triptrack.Services.trip_engine import TripEngine  # noqa: E402
from triptrack.Services.trip_store import MemoryTripStore, SqlTripStore  # noqa: E402

T0 = datetime(2025, 1, 2, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def at(seconds: float) -> datetime:
    """T0 shifted by a number of seconds."""
    return T0 + timedelta(seconds=seconds)


# =============================================================================
# STORES
# =============================================================================

@pytest.fixture
def memory_store() -> MemoryTripStore:
    return MemoryTripStore()


@pytest.fixture
def sql_store() -> Iterator[SqlTripStore]:
    engine = make_engine("sqlite://")
    init_db(engine)
    store = SqlTripStore(make_session_factory(engine))
    yield store
    store.close()


# =============================================================================
# CORE COMPONENTS
# =============================================================================

@pytest.fixture
def states() -> DeviceStateStore:
    return DeviceStateStore(history_size=200)


@pytest.fixture
def broadcaster(states: DeviceStateStore) -> FixBroadcaster:
    return FixBroadcaster(states, queue_size=16)


@pytest.fixture
def engine(states: DeviceStateStore, memory_store: MemoryTripStore, broadcaster: FixBroadcaster) -> TripEngine:
    """Engine over an inline (not started) writer, so writes are immediate."""
    return TripEngine(states, TripWriter(memory_store), broadcaster)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracking(memory_store: MemoryTripStore, clock: FakeClock) -> TrackingService:
    return TrackingService(memory_store, async_writes=False, clock=clock)
