# triptrack/Repositories/trip.py
"""
Trip Repository - Database operations for trips and their points.

Responsibilities:
- Insert trips and points
- Seal trips (ended_at is written at most once)
- Query a device's trips with their points in (started_at, seq) order

Every write function commits its own transaction.

Usage:
    from triptrack.Repositories.trip import create_trip, get_trips_by_device

    create_trip(db, "TRIP_20250102_bike1_101500_3fa2c1", "bike1", started_at)
    trips = get_trips_by_device(db, "bike1")
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from triptrack.Models.trip import Trip, TripPoint

logger = logging.getLogger(__name__)


# ==========================================================
# CREATE OPERATIONS
# ==========================================================

def create_trip(DB: Session, trip_id: str, device_id: str, started_at: datetime) -> Trip:
    """
    Insert a new open trip (ended_at NULL).

    Args:
        DB: SQLAlchemy session
        trip_id: Pre-assigned trip identifier
        device_id: Device the trip belongs to
        started_at: Instant of the fix that opened the trip

    Returns:
        Trip: the inserted row
    """
    new_trip = Trip(id=trip_id, device_id=device_id, started_at=started_at, ended_at=None)
    DB.add(new_trip)
    DB.commit()

    logger.debug("[REPO] Trip created: %s (device: %s)", trip_id, device_id)
    return new_trip


def append_point(
    DB: Session,
    trip_id: str,
    seq: int,
    lat: float,
    lng: float,
    ts: datetime
) -> TripPoint:
    """
    Append one point to a trip.

    Raises:
        sqlalchemy.exc.IntegrityError: (trip_id, seq) already exists
    """
    point = TripPoint(trip_id=trip_id, seq=seq, lat=lat, lng=lng, ts=ts)
    DB.add(point)
    DB.commit()
    return point


# ==========================================================
# UPDATE OPERATIONS
# ==========================================================

def close_trip(DB: Session, trip_id: str, ended_at: datetime) -> bool:
    """
    Seal a trip by setting ended_at.

    Only an open trip is updated, so a sealed trip keeps its first ended_at.

    Returns:
        bool: True if the trip was open and is now sealed, False otherwise
    """
    result = DB.execute(
        update(Trip)
        .where(Trip.id == trip_id, Trip.ended_at.is_(None))
        .values(ended_at=ended_at)
    )
    DB.commit()

    if result.rowcount > 0:
        logger.debug("[REPO] Trip closed: %s", trip_id)
        return True

    logger.warning("[REPO] Cannot close trip - not found or already closed: %s", trip_id)
    return False


# ==========================================================
# READ OPERATIONS
# ==========================================================

def get_trips_by_device(DB: Session, device_id: str) -> List[Trip]:
    """
    All trips of a device, oldest first, points loaded in seq order.

    The open trip (ended_at NULL), if any, is included.
    """
    query = (
        select(Trip)
        .where(Trip.device_id == device_id)
        .order_by(Trip.started_at.asc(), Trip.id.asc())
    )
    return list(DB.scalars(query).all())


def get_open_trips(DB: Session, device_id: Optional[str] = None) -> List[Trip]:
    """
    Trips that have not been sealed, optionally for one device.
    """
    query = select(Trip).where(Trip.ended_at.is_(None))
    if device_id:
        query = query.where(Trip.device_id == device_id)
    return list(DB.scalars(query.order_by(Trip.started_at.asc())).all())
