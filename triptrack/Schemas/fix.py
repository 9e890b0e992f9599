# triptrack/Schemas/fix.py

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Fix(BaseModel):
    """
    One position report for one device, stamped at receipt time.

    Immutable once created; shared by the segmentation engine, the history
    buffer and the broadcaster.
    """
    model_config = ConfigDict(frozen=True)

    device_id: str = Field(..., min_length=1, description="Identifier of the reporting device")
    latitude: float = Field(..., description="Latitude in decimal degrees")
    longitude: float = Field(..., description="Longitude in decimal degrees")
    timestamp: datetime = Field(..., description="UTC instant the report was received")


class AcceptedFix(BaseModel):
    """
    Result of ingesting a fix.

    recorded is True when the fix was written as a trip point; jitter fixes
    are accepted (they update position and history) but not recorded.
    """
    model_config = ConfigDict(frozen=True)

    fix: Fix
    recorded: bool = False
    trip_id: Optional[str] = None
    seq: Optional[int] = None


class Discarded(BaseModel):
    """A fix rejected before any state was touched."""
    model_config = ConfigDict(frozen=True)

    device_id: str
    reason: str


IngestResult = Union[AcceptedFix, Discarded]
