# triptrack/Services/trip_store.py
"""
Trip Persistence Port and its implementations.

The segmentation engine records trip boundaries and points through the
TripStore interface; which engine stores them durably is a deployment choice:

- SqlTripStore: SQLAlchemy (SQLite, PostgreSQL, ...) via Repositories.trip
- MemoryTripStore: process-local, for development and tests

Contract of every implementation:
- points appended under a trip_id are returned in seq order
- a trip's ended_at is None until close_trip() is called, and is written once
- list_trips() returns a device's trips ordered by started_at, the open one
  included

Storage failures are raised as PersistenceError.
"""

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from triptrack.Core.exceptions import PersistenceError
from triptrack.Models.trip import Trip
from triptrack.Repositories import trip as trip_repo
from triptrack.Schemas.trip import Trip_get, TripPoint_get

logger = logging.getLogger(__name__)


def generate_trip_id(device_id: str, started_at: datetime) -> str:
    """
    Build a readable, unique trip identifier.

    Format: TRIP_<yyyymmdd>_<device>_<hhmmss>_<6 hex chars>
    The device part keeps alphanumerics only and at most 20 characters.
    """
    date_str = started_at.strftime("%Y%m%d")
    time_str = started_at.strftime("%H%M%S")
    safe_device = "".join(ch for ch in device_id if ch.isalnum())[:20] or "device"
    return f"TRIP_{date_str}_{safe_device}_{time_str}_{uuid.uuid4().hex[:6]}"


def _as_utc(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is not None and ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class TripStore(ABC):
    """
    Interface the segmentation engine uses to durably record trips.
    """

    @abstractmethod
    def open_trip(self, device_id: str, started_at: datetime, trip_id: Optional[str] = None) -> str:
        """Create an open trip and return its id (trip_id is used when given)."""

    @abstractmethod
    def close_trip(self, trip_id: str, ended_at: datetime) -> None:
        """Seal an open trip."""

    @abstractmethod
    def append_point(
        self, trip_id: str, seq: int, lat: float, lng: float, ts: datetime
    ) -> None:
        """Append one point to a trip."""

    @abstractmethod
    def list_trips(self, device_id: str) -> List[Trip_get]:
        """Trips of a device by started_at, each with its points by seq."""

    def seal_dangling_trips(self) -> int:
        """
        Seal trips left open by a previous process.

        Live state does not survive a restart, so nothing would ever close
        them. Returns the number of trips sealed.
        """
        return 0

    def close(self) -> None:
        """Release resources held by the store."""


# ==========================================================
# IN-MEMORY IMPLEMENTATION
# ==========================================================

class MemoryTripStore(TripStore):
    """
    Thread-safe, process-local trip store.
    """

    def __init__(self):
        self._trips: Dict[str, Trip_get] = {}
        self._lock = threading.Lock()

    def open_trip(self, device_id: str, started_at: datetime, trip_id: Optional[str] = None) -> str:
        trip_id = trip_id or generate_trip_id(device_id, started_at)
        with self._lock:
            if trip_id in self._trips:
                raise PersistenceError("open_trip", f"trip {trip_id} already exists")
            self._trips[trip_id] = Trip_get(
                id=trip_id, device_id=device_id, started_at=started_at, ended_at=None
            )
        return trip_id

    def close_trip(self, trip_id: str, ended_at: datetime) -> None:
        with self._lock:
            trip = self._trips.get(trip_id)
            if trip is None:
                raise PersistenceError("close_trip", f"unknown trip {trip_id}")
            if trip.ended_at is None:
                trip.ended_at = ended_at

    def append_point(
        self, trip_id: str, seq: int, lat: float, lng: float, ts: datetime
    ) -> None:
        with self._lock:
            trip = self._trips.get(trip_id)
            if trip is None:
                raise PersistenceError("append_point", f"unknown trip {trip_id}")
            if any(point.seq == seq for point in trip.points):
                raise PersistenceError("append_point", f"duplicate seq {seq} for trip {trip_id}")
            trip.points.append(
                TripPoint_get(trip_id=trip_id, seq=seq, latitude=lat, longitude=lng, timestamp=ts)
            )
            trip.points.sort(key=lambda point: point.seq)

    def list_trips(self, device_id: str) -> List[Trip_get]:
        with self._lock:
            trips = [t for t in self._trips.values() if t.device_id == device_id]
            trips.sort(key=lambda t: t.started_at)
            return [t.model_copy(update={"points": list(t.points)}) for t in trips]


# ==========================================================
# SQLALCHEMY IMPLEMENTATION
# ==========================================================

class SqlTripStore(TripStore):
    """
    Trip store backed by SQLAlchemy.

    Each operation runs in its own short session. SQLAlchemy errors are
    converted into PersistenceError.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def open_trip(self, device_id: str, started_at: datetime, trip_id: Optional[str] = None) -> str:
        trip_id = trip_id or generate_trip_id(device_id, started_at)
        try:
            with self._session_factory() as db:
                trip_repo.create_trip(db, trip_id, device_id, started_at)
        except SQLAlchemyError as e:
            raise PersistenceError("open_trip", str(e)) from e
        return trip_id

    def close_trip(self, trip_id: str, ended_at: datetime) -> None:
        try:
            with self._session_factory() as db:
                trip_repo.close_trip(db, trip_id, ended_at)
        except SQLAlchemyError as e:
            raise PersistenceError("close_trip", str(e)) from e

    def append_point(
        self, trip_id: str, seq: int, lat: float, lng: float, ts: datetime
    ) -> None:
        try:
            with self._session_factory() as db:
                trip_repo.append_point(db, trip_id, seq, lat, lng, ts)
        except SQLAlchemyError as e:
            raise PersistenceError("append_point", str(e)) from e

    def list_trips(self, device_id: str) -> List[Trip_get]:
        try:
            with self._session_factory() as db:
                rows = trip_repo.get_trips_by_device(db, device_id)
                return [self._to_schema(row) for row in rows]
        except SQLAlchemyError as e:
            raise PersistenceError("list_trips", str(e)) from e

    def seal_dangling_trips(self) -> int:
        try:
            with self._session_factory() as db:
                sealed = 0
                for row in trip_repo.get_open_trips(db):
                    ended_at = row.points[-1].ts if row.points else row.started_at
                    if trip_repo.close_trip(db, row.id, ended_at):
                        sealed += 1
        except SQLAlchemyError as e:
            raise PersistenceError("seal_dangling_trips", str(e)) from e

        if sealed:
            logger.info("[PERSIST] Sealed %d trip(s) left open by a previous run", sealed)
        return sealed

    def close(self) -> None:
        bind = self._session_factory.kw.get("bind")
        if bind is not None:
            bind.dispose()

    @staticmethod
    def _to_schema(row: Trip) -> Trip_get:
        return Trip_get(
            id=row.id,
            device_id=row.device_id,
            started_at=_as_utc(row.started_at),
            ended_at=_as_utc(row.ended_at),
            points=[
                TripPoint_get(
                    trip_id=point.trip_id,
                    seq=point.seq,
                    latitude=point.lat,
                    longitude=point.lng,
                    timestamp=_as_utc(point.ts),
                )
                for point in row.points
            ],
        )
