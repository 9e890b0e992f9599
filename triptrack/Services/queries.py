# triptrack/Services/queries.py
"""
Read side of the tracker: live positions, bounded history and trips.

Unknown devices are not an error; they yield empty results.
"""

from typing import Any, Dict, List

from triptrack.Schemas.trip import Trip_get
from triptrack.Services.device_state import DeviceStateStore
from triptrack.Services.fix_serialization import serialize_fix, serialize_many
from triptrack.Services.persistence_worker import TripWriter


class TrackingQueries:
    """
    Query façade over the device state store and the trip store.
    """

    def __init__(self, states: DeviceStateStore, writer: TripWriter):
        self.states = states
        self.writer = writer

    def current_and_history(self, device_id: str) -> Dict[str, Any]:
        """
        Returns:
            {"current": fix payload | None, "history": [fix payload, ...]}
        """
        snap = self.states.snapshot(device_id)
        if snap is None:
            return {"current": None, "history": []}
        return {"current": serialize_fix(snap.current), "history": serialize_many(snap.history)}

    def all_current_and_history(self) -> Dict[str, Dict[str, Any]]:
        """Same as current_and_history() for every device with live state."""
        return {
            device_id: {"current": serialize_fix(snap.current), "history": serialize_many(snap.history)}
            for device_id, snap in self.states.snapshot_all().items()
        }

    def device_ids(self) -> List[str]:
        return self.states.device_ids()

    async def list_trips(self, device_id: str) -> List[Trip_get]:
        """
        Persisted trips of a device, the open one included, after pending
        writes have been flushed.

        Raises:
            PersistenceError: the trip store could not be read
        """
        return await self.writer.list_trips(device_id)
