# triptrack/Services/trip_engine.py
"""
Trip Segmentation Engine - turns a device's fix stream into trips.

Responsibilities:
- Decide, for every incoming fix, whether it opens a trip, extends the open
  trip or is GPS jitter
- Keep the device's live state (last fix, history, open trip, next seq)
- Issue trip writes through the TripWriter, in causal order
- Hand every accepted fix to the broadcaster

Key Concepts:
- Two references per device:
  * last_fix (every fix, jitter included) -> time gap detection
  * last_trip_point (last written point) -> jitter detection
  A device parked for a long time therefore keeps extending last_fix while
  writing nothing, and a gap is only measured against the latest report.
- Elapsed time dominates: a gap longer than TRIP_GAP always starts a new
  trip, however small the displacement.

Decision Logic:
1. No previous fix, or gap > TRIP_GAP?  -> close open trip (if any), open new
   trip, write fix as seq 0
2. Moved >= MIN_DISTANCE from the last trip point (or no trip point yet)?
   -> append to the open trip (opening one if none is open)
3. Otherwise -> jitter: position and history only
"""

import contextlib
import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from triptrack.Schemas.fix import AcceptedFix, Discarded, Fix, IngestResult
from triptrack.Services.broadcaster import FixBroadcaster
from triptrack.Services.device_state import DeviceState, DeviceStateStore
from triptrack.Services.geodesy import calculate_haversine_distance
from triptrack.Services.persistence_worker import TripWriter

logger = logging.getLogger(__name__)

TRIP_GAP = timedelta(minutes=5)
MIN_DISTANCE_M = 10.0


class TripEngine:
    """
    Stateful trip segmentation engine.

    Ingestion for one device is serialized by that device's lock; different
    devices never wait on each other.
    """

    def __init__(
        self,
        states: DeviceStateStore,
        writer: TripWriter,
        broadcaster: Optional[FixBroadcaster] = None,
        trip_gap: timedelta = TRIP_GAP,
        min_distance_m: float = MIN_DISTANCE_M,
    ):
        self.states = states
        self.writer = writer
        self.broadcaster = broadcaster
        self.trip_gap = trip_gap
        self.min_distance_m = min_distance_m

        logger.info(
            "[ENGINE] Initialized: trip gap %.0fs, jitter threshold %.1fm",
            trip_gap.total_seconds(), min_distance_m,
        )

    # ==========================================================
    # MAIN ENTRY POINT
    # ==========================================================

    async def ingest(
        self,
        device_id: str,
        latitude: float,
        longitude: float,
        timestamp: datetime,
    ) -> IngestResult:
        """
        Process one fix for one device.

        Args:
            device_id: Reporting device
            latitude, longitude: Decimal degrees, must be finite
            timestamp: Receipt instant assigned by the caller

        Returns:
            AcceptedFix for every valid fix (recorded=True when it was written
            as a trip point), Discarded when the inputs are unusable.
        """
        if not device_id:
            return Discarded(device_id=device_id or "", reason="missing device id")
        if not (_is_finite(latitude) and _is_finite(longitude)):
            return Discarded(device_id=device_id, reason="latitude/longitude must be finite numbers")

        fix = Fix(device_id=device_id, latitude=latitude, longitude=longitude, timestamp=timestamp)

        async with self.states.lock_for(device_id):
            state = self.states.get_or_create(device_id)
            result = await self._apply(state, fix)

        return result

    async def _apply(self, state: DeviceState, fix: Fix) -> AcceptedFix:
        prev = state.last_fix
        gap_exceeded = prev is None or (fix.timestamp - prev.timestamp) > self.trip_gap

        is_jitter = False
        if state.last_trip_point is not None:
            moved = calculate_haversine_distance(
                state.last_trip_point[0], state.last_trip_point[1],
                fix.latitude, fix.longitude,
            )
            is_jitter = moved < self.min_distance_m

        # No await between record and publish: catch-up and live never overlap
        state.record(fix)
        if self.broadcaster is not None:
            self.broadcaster.publish(fix)

        if gap_exceeded:
            if state.active_trip_id is not None:
                closed_id = state.active_trip_id
                await self.writer.close_trip(closed_id, fix.timestamp)
                logger.info(
                    "[ENGINE] %s: time gap, closed trip %s (%d points)",
                    fix.device_id, closed_id, state.next_seq,
                )
            return await self._open_trip(state, fix)

        if is_jitter:
            logger.debug("[ENGINE] %s: jitter, fix not recorded", fix.device_id)
            return AcceptedFix(fix=fix, recorded=False, trip_id=state.active_trip_id)

        if state.active_trip_id is None:
            return await self._open_trip(state, fix)

        seq = state.next_seq
        state.next_seq += 1
        state.last_trip_point = (fix.latitude, fix.longitude)
        await self.writer.append_point(
            state.active_trip_id, seq, fix.latitude, fix.longitude, fix.timestamp
        )
        return AcceptedFix(fix=fix, recorded=True, trip_id=state.active_trip_id, seq=seq)

    async def _open_trip(self, state: DeviceState, fix: Fix) -> AcceptedFix:
        trip_id = await self.writer.open_trip(fix.device_id, fix.timestamp)
        state.active_trip_id = trip_id
        state.next_seq = 1
        state.last_trip_point = (fix.latitude, fix.longitude)
        await self.writer.append_point(trip_id, 0, fix.latitude, fix.longitude, fix.timestamp)

        logger.info("[ENGINE] %s: new trip %s", fix.device_id, trip_id)
        return AcceptedFix(fix=fix, recorded=True, trip_id=trip_id, seq=0)

    # ==========================================================
    # ADMINISTRATION
    # ==========================================================

    async def reset_all(self, now: datetime) -> int:
        """
        Seal every open trip at `now` and clear all live device state.

        Persisted trips and points are kept.

        Returns:
            int: number of trips sealed
        """
        device_ids = self.states.known_device_ids()
        sealed = 0
        async with contextlib.AsyncExitStack() as held:
            # Locks are always taken in first-seen order
            for device_id in device_ids:
                await held.enter_async_context(self.states.lock_for(device_id))

            for device_id in device_ids:
                state = self.states.get_or_create(device_id)
                if state.active_trip_id is not None:
                    await self.writer.close_trip(state.active_trip_id, now)
                    sealed += 1
            self.states.reset_all(device_ids)

        logger.info("[ENGINE] Live state cleared (%d open trip(s) sealed)", sealed)
        return sealed


def _is_finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
