# triptrack/Services/fix_serialization.py

from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from triptrack.Schemas.fix import AcceptedFix, Fix
from triptrack.Schemas.trip import Trip_get


def to_utc_iso(ts: Optional[datetime]) -> Optional[str]:
    """
    Format a datetime as UTC ISO-8601 with a 'Z' suffix.

    Naive datetimes are taken to be UTC already (SQLite drops tzinfo).
    """
    if ts is None:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def serialize_fix(fix: Optional[Fix]) -> Optional[dict[str, Any]]:
    """
    Convert a Fix into the wire payload shared by HTTP responses and live streams:

        {"id": "bike1", "lat": 41.0, "lng": 29.0, "timestamp": "2025-01-02T10:15:00Z"}
    """
    if fix is None:
        return None
    return {
        "id": fix.device_id,
        "lat": fix.latitude,
        "lng": fix.longitude,
        "timestamp": to_utc_iso(fix.timestamp),
    }


def serialize_many(fixes: Iterable[Fix]) -> list[dict[str, Any]]:
    return [serialized for fix in fixes if (serialized := serialize_fix(fix)) is not None]


def serialize_accepted(result: AcceptedFix) -> dict[str, Any]:
    """Fix payload plus whether it was written to a trip, and which."""
    data = serialize_fix(result.fix) or {}
    data["recorded"] = result.recorded
    data["trip_id"] = result.trip_id
    return data


def serialize_trip(trip: Trip_get) -> dict[str, Any]:
    """
    Convert a trip into a JSON-serializable dict with nested ordered points.
    """
    data = trip.model_dump(exclude={"points"})
    data["started_at"] = to_utc_iso(trip.started_at)
    data["ended_at"] = to_utc_iso(trip.ended_at)
    data["points"] = [
        {
            "seq": point.seq,
            "lat": point.latitude,
            "lng": point.longitude,
            "timestamp": to_utc_iso(point.timestamp),
        }
        for point in trip.points
    ]
    return data
