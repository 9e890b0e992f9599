# triptrack/Services/tracking.py
"""
Tracking Service - process-scoped composition of the tracking core.

Owns, for the lifetime of the process:
- DeviceStateStore (live state per device)
- TripWriter + TripStore (durable trips and points)
- FixBroadcaster (live subscribers)
- TripEngine (segmentation, the only writer of device state)
- TrackingQueries (read side)

Adapters (HTTP routes, WebSocket/SSE streams, UDP listener) only talk to
this object; it is created in the application lifespan and passed around
explicitly instead of living in module globals.

Usage:
    tracking = TrackingService.from_settings(settings)
    await tracking.start()
    results = await tracking.ingest("bike1,bike2", 41.0082, 28.9784)
    await tracking.stop()
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from triptrack.Core.config import Settings
from triptrack.Core.exceptions import PersistenceError
from triptrack.DB.session import init_db, make_engine, make_session_factory
from triptrack.Schemas.fix import IngestResult
from triptrack.Schemas.trip import Trip_get
from triptrack.Services.broadcaster import DEFAULT_QUEUE_SIZE, FixBroadcaster, Subscription
from triptrack.Services.device_state import DEFAULT_HISTORY_SIZE, DeviceStateStore
from triptrack.Services.persistence_worker import TripWriter
from triptrack.Services.queries import TrackingQueries
from triptrack.Services.trip_engine import MIN_DISTANCE_M, TRIP_GAP, TripEngine
from triptrack.Services.trip_store import MemoryTripStore, SqlTripStore, TripStore
from triptrack.Services.validators import coerce_coordinate, parse_device_ids

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_trip_store(settings: Settings) -> TripStore:
    """
    Create the trip store selected by PERSISTENCE_BACKEND.

    For the sql backend the schema is created if missing.
    """
    if settings.PERSISTENCE_BACKEND == "memory":
        logger.info("[STARTUP] Using in-memory trip store")
        return MemoryTripStore()

    engine = make_engine(settings.DATABASE_URL)
    init_db(engine)
    logger.info("[STARTUP] Using SQL trip store (%s)", engine.url.render_as_string(hide_password=True))
    return SqlTripStore(make_session_factory(engine))


class TrackingService:
    """
    Entry point of the tracking core for every adapter.
    """

    def __init__(
        self,
        store: TripStore,
        *,
        trip_gap: timedelta = TRIP_GAP,
        min_distance_m: float = MIN_DISTANCE_M,
        history_size: int = DEFAULT_HISTORY_SIZE,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        default_device_id: str = "default",
        async_writes: bool = True,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.default_device_id = default_device_id
        self.async_writes = async_writes
        self.clock = clock

        self.states = DeviceStateStore(history_size=history_size)
        self.writer = TripWriter(store)
        self.broadcaster = FixBroadcaster(self.states, queue_size=queue_size)
        self.engine = TripEngine(
            self.states,
            self.writer,
            self.broadcaster,
            trip_gap=trip_gap,
            min_distance_m=min_distance_m,
        )
        self.queries = TrackingQueries(self.states, self.writer)

    @classmethod
    def from_settings(cls, settings: Settings, store: Optional[TripStore] = None) -> "TrackingService":
        return cls(
            store if store is not None else build_trip_store(settings),
            trip_gap=timedelta(seconds=settings.TRIP_GAP_S),
            min_distance_m=settings.TRIP_MIN_DISTANCE_M,
            history_size=settings.HISTORY_MAX_SIZE,
            queue_size=settings.SUBSCRIBER_QUEUE_SIZE,
            default_device_id=settings.DEFAULT_DEVICE_ID,
            async_writes=settings.PERSISTENCE_ASYNC,
        )

    # ==========================================================
    # LIFECYCLE
    # ==========================================================

    async def start(self):
        """
        Seal trips left open by a previous run, then start the background
        writer (async mode).
        """
        try:
            await asyncio.to_thread(self.store.seal_dangling_trips)
        except PersistenceError as e:
            logger.error("[STARTUP] Could not seal dangling trips: %s", e)

        if self.async_writes:
            self.writer.start()

    async def stop(self):
        """Flush pending writes, close subscribers, release the store."""
        await self.writer.stop()
        self.broadcaster.close_all()
        self.store.close()

    # ==========================================================
    # WRITE SIDE
    # ==========================================================

    async def ingest(
        self,
        device_ids: Union[str, Iterable[str], None],
        lat: Any,
        lng: Any,
    ) -> List[IngestResult]:
        """
        Ingest one report for one or more devices.

        Coordinates are validated first; every device then gets an
        independent fix with the same coordinates and the same receipt
        timestamp.

        Raises:
            ValidationError: lat/lng missing or not numeric (nothing ingested)
        """
        latitude = coerce_coordinate("lat", lat)
        longitude = coerce_coordinate("lng", lng)
        ids = parse_device_ids(device_ids, default=self.default_device_id)
        timestamp = self.clock()

        results: List[IngestResult] = []
        for device_id in ids:
            results.append(await self.engine.ingest(device_id, latitude, longitude, timestamp))
            logger.info("[TRACKING] New location (id=%s): %s, %s", device_id, latitude, longitude)
        return results

    async def reset_all(self) -> int:
        """
        Clear all live device state. Open trips are sealed; persisted trips
        and points are untouched.
        """
        return await self.engine.reset_all(self.clock())

    # ==========================================================
    # READ SIDE
    # ==========================================================

    def current_and_history(self, device_id: str) -> Dict[str, Any]:
        return self.queries.current_and_history(device_id)

    def all_current_and_history(self) -> Dict[str, Dict[str, Any]]:
        return self.queries.all_current_and_history()

    def device_ids(self) -> List[str]:
        return self.queries.device_ids()

    async def list_trips(self, device_id: str) -> List[Trip_get]:
        return await self.queries.list_trips(device_id)

    # ==========================================================
    # LIVE UPDATES
    # ==========================================================

    def subscribe(self, device_filter: Iterable[str] = ()) -> Subscription:
        return self.broadcaster.subscribe(device_filter)

    def unsubscribe(self, subscription: Union[Subscription, str]) -> bool:
        return self.broadcaster.unsubscribe(subscription)
