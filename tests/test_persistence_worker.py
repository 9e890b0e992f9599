# tests/test_persistence_worker.py

import asyncio
import logging
import time

import pytest
from conftest import at

from triptrack.Core.exceptions import PersistenceError
from triptrack.Services.persistence_worker import TripWriter
from triptrack.Services.trip_store import MemoryTripStore


class RecordingStore(MemoryTripStore):
    """Memory store that remembers the order operations reached it."""

    def __init__(self):
        super().__init__()
        self.calls = []

    def open_trip(self, device_id, started_at, trip_id=None):
        self.calls.append(("open", trip_id))
        return super().open_trip(device_id, started_at, trip_id)

    def append_point(self, trip_id, seq, lat, lng, ts):
        self.calls.append(("point", seq))
        super().append_point(trip_id, seq, lat, lng, ts)

    def close_trip(self, trip_id, ended_at):
        self.calls.append(("close", trip_id))
        super().close_trip(trip_id, ended_at)


class TestInlineMode:
    @pytest.mark.asyncio
    async def test_writes_execute_immediately(self) -> None:
        store = RecordingStore()
        writer = TripWriter(store)

        trip_id = await writer.open_trip("bike1", at(0))
        await writer.append_point(trip_id, 0, 41.0, 29.0, at(0))

        assert writer.running is False
        assert store.calls == [("open", trip_id), ("point", 0)]


class TestAsyncMode:
    @pytest.mark.asyncio
    async def test_writes_keep_issue_order(self) -> None:
        store = RecordingStore()
        writer = TripWriter(store)
        writer.start()
        try:
            first = await writer.open_trip("bike1", at(0))
            for seq in range(5):
                await writer.append_point(first, seq, 41.0 + seq * 0.001, 29.0, at(seq))
            await writer.close_trip(first, at(400))
            second = await writer.open_trip("bike1", at(400))

            await writer.drain()
        finally:
            await writer.stop()

        assert store.calls == (
            [("open", first)]
            + [("point", seq) for seq in range(5)]
            + [("close", first), ("open", second)]
        )

    @pytest.mark.asyncio
    async def test_trip_id_is_known_before_write(self) -> None:
        writer = TripWriter(MemoryTripStore())
        writer.start()
        try:
            trip_id = await writer.open_trip("bike1", at(0))
            assert trip_id.startswith("TRIP_20250102_bike1_")
        finally:
            await writer.stop()

    @pytest.mark.asyncio
    async def test_list_trips_reads_own_writes(self) -> None:
        writer = TripWriter(MemoryTripStore())
        writer.start()
        try:
            trip_id = await writer.open_trip("bike1", at(0))
            await writer.append_point(trip_id, 0, 41.0, 29.0, at(0))

            trips = await writer.list_trips("bike1")
        finally:
            await writer.stop()

        assert [t.point_count for t in trips] == [1]

    @pytest.mark.asyncio
    async def test_list_trips_not_delayed_by_later_writes(self) -> None:
        class SlowStore(MemoryTripStore):
            def append_point(self, trip_id, seq, lat, lng, ts):
                time.sleep(0.01)
                super().append_point(trip_id, seq, lat, lng, ts)

        writer = TripWriter(SlowStore())
        writer.start()
        bike1 = await writer.open_trip("bike1", at(0))
        await writer.append_point(bike1, 0, 41.0, 29.0, at(0))
        bike2 = await writer.open_trip("bike2", at(0))

        async def keep_reporting():
            seq = 0
            while True:
                for _ in range(5):
                    await writer.append_point(bike2, seq, 42.0, 29.0, at(seq))
                    seq += 1
                await asyncio.sleep(0.02)

        producer = asyncio.create_task(keep_reporting())
        try:
            await asyncio.sleep(0.05)
            trips = await asyncio.wait_for(writer.list_trips("bike1"), timeout=3)
        finally:
            producer.cancel()
            with pytest.raises(asyncio.CancelledError):
                await producer
            await writer.stop()

        assert [t.point_count for t in trips] == [1]

    @pytest.mark.asyncio
    async def test_stop_flushes_pending_writes(self) -> None:
        store = MemoryTripStore()
        writer = TripWriter(store)
        writer.start()

        trip_id = await writer.open_trip("bike1", at(0))
        await writer.append_point(trip_id, 0, 41.0, 29.0, at(0))
        await writer.stop()

        assert store.list_trips("bike1")[0].point_count == 1
        assert writer.pending == 0


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog) -> None:
        writer = TripWriter(MemoryTripStore())
        writer.start()
        try:
            with caplog.at_level(logging.ERROR):
                await writer.append_point("TRIP_unknown", 0, 41.0, 29.0, at(0))
                await writer.drain()
        finally:
            await writer.stop()

        assert writer.failures == 1
        assert any("unknown trip" in record.getMessage() for record in caplog.records)

    @pytest.mark.asyncio
    async def test_worker_survives_failure(self) -> None:
        store = MemoryTripStore()
        writer = TripWriter(store)
        writer.start()
        try:
            await writer.close_trip("TRIP_unknown", at(0))
            trip_id = await writer.open_trip("bike1", at(0))
            await writer.append_point(trip_id, 0, 41.0, 29.0, at(0))
            trips = await writer.list_trips("bike1")
        finally:
            await writer.stop()

        assert writer.failures == 1
        assert trips[0].point_count == 1

    @pytest.mark.asyncio
    async def test_list_trips_propagates_read_errors(self) -> None:
        class Unreadable(MemoryTripStore):
            def list_trips(self, device_id):
                raise PersistenceError("list_trips", "database is down")

        writer = TripWriter(Unreadable())
        with pytest.raises(PersistenceError):
            await writer.list_trips("bike1")
