# triptrack/Controller/Routes/locations.py
"""
REST endpoints for reporting and querying device positions and trips.

    POST   /location        report a position for one or more devices
    GET    /location        live position + history (one device or all)
    DELETE /locations       clear live state (persisted trips are kept)
    GET    /ids             devices with live state
    GET    /trips           persisted trips of a device, open trip included
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from triptrack.Controller.deps import get_tracking
from triptrack.Core.exceptions import ValidationError
from triptrack.Schemas.fix import AcceptedFix
from triptrack.Services.fix_serialization import serialize_accepted, serialize_trip
from triptrack.Services.tracking import TrackingService

logger = logging.getLogger(__name__)

router = APIRouter()


def _requested_ids(request: Request) -> Optional[str]:
    """
    Device ids of a report: header 'id' or 'ids', then query 'id' or 'ids'.
    """
    return (
        request.headers.get("id")
        or request.headers.get("ids")
        or request.query_params.get("id")
        or request.query_params.get("ids")
    )


@router.post("/location")
async def post_location(request: Request, tracking: TrackingService = Depends(get_tracking)):
    """
    Report a position.

    Body:
        {"lat": 41.0082, "lng": 28.9784}

    Device ids come from the 'id'/'ids' header or query parameter, as a
    comma-separated list; "default" when none is given. Every listed device
    receives the same fix.

    Returns:
        {
            "status": "success",
            "message": "Location(s) updated",
            "locations": [{"id", "lat", "lng", "timestamp", "recorded", "trip_id"}, ...]
        }

    Raises:
        400: lat or lng missing or not numeric
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        payload = {}

    lat, lng = payload.get("lat"), payload.get("lng")
    if lat is None or lng is None:
        raise ValidationError("lat/lng", None, "lat and lng required")

    results = await tracking.ingest(_requested_ids(request), lat, lng)

    return {
        "status": "success",
        "message": "Location(s) updated",
        "locations": [serialize_accepted(r) for r in results if isinstance(r, AcceptedFix)],
    }


@router.get("/location")
async def get_location(
    id: Optional[str] = Query(None, description="Device ID; omit for every device"),
    tracking: TrackingService = Depends(get_tracking),
) -> Dict[str, Any]:
    """
    Live position and recent history.

    Examples:
        GET /location?id=bike1 -> {"current": {...}, "history": [...]}
        GET /location          -> {"bike1": {"current": ..., "history": [...]}, ...}

    Unknown devices return {"current": null, "history": []}.
    """
    if id:
        return tracking.current_and_history(id)
    return tracking.all_current_and_history()


@router.delete("/locations")
async def delete_locations(tracking: TrackingService = Depends(get_tracking)):
    """
    Clear live state of every device. Open trips are sealed; persisted trips
    and points stay available through GET /trips.
    """
    await tracking.reset_all()
    return {"status": "success", "message": "Locations cleared"}


@router.get("/ids")
async def get_ids(tracking: TrackingService = Depends(get_tracking)):
    return tracking.device_ids()


@router.get("/trips")
async def get_trips(
    id: Optional[str] = Query(None, description="Device ID (required)"),
    tracking: TrackingService = Depends(get_tracking),
):
    """
    Persisted trips of a device, oldest first, each with its ordered points
    and summary (point_count, distance_m, duration_s).

    Raises:
        400: id missing
        503: trip store unavailable
    """
    if not id:
        return JSONResponse(status_code=400, content={"error": "id query param required"})

    trips = await tracking.list_trips(id)
    return {"trips": [serialize_trip(trip) for trip in trips]}
