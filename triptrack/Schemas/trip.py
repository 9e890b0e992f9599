# triptrack/Schemas/trip.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from triptrack.Services.geodesy import calculate_haversine_distance


# ============================================
# TRIP POINT
# ============================================
class TripPoint_get(BaseModel):
    """
    One recorded point of a trip.

    Points are append-only and uniquely ordered inside their trip by seq,
    which starts at 0 for the point that opened the trip.
    """
    model_config = ConfigDict(from_attributes=True, frozen=True)

    trip_id: str = Field(..., max_length=100)
    seq: int = Field(..., ge=0, description="Position of the point inside its trip")
    latitude: float = Field(..., description="Latitude in decimal degrees")
    longitude: float = Field(..., description="Longitude in decimal degrees")
    timestamp: datetime = Field(..., description="UTC instant of the fix")


# ============================================
# TRIP WITH NESTED POINTS
# ============================================
class Trip_get(BaseModel):
    """
    Schema for a trip and its ordered points, as returned by the trip store.

    ended_at stays None while the trip is open. Summary metrics are derived
    from the points:

    - point_count: number of recorded points
    - distance_m: sum of great-circle legs between consecutive points
    - duration_s: started_at -> ended_at once sealed, otherwise
      started_at -> last point
    """
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., min_length=1, max_length=100, description="Trip identifier")
    device_id: str = Field(..., min_length=1, max_length=100)
    started_at: datetime
    ended_at: Optional[datetime] = None
    points: List[TripPoint_get] = Field(default_factory=list)

    @computed_field
    @property
    def point_count(self) -> int:
        return len(self.points)

    @computed_field
    @property
    def distance_m(self) -> float:
        total = 0.0
        for prev, cur in zip(self.points, self.points[1:]):
            total += calculate_haversine_distance(
                prev.latitude, prev.longitude, cur.latitude, cur.longitude
            )
        return total

    @computed_field
    @property
    def duration_s(self) -> float:
        end = self.ended_at
        if end is None:
            end = self.points[-1].timestamp if self.points else self.started_at
        return max(0.0, (end - self.started_at).total_seconds())
