# triptrack/Services/device_state.py
"""
Device State Store - live, in-memory tracking state per device.

Responsibilities:
- Lazily create one DeviceState per device identifier
- Hand out a per-device asyncio.Lock so ingestion for one device is
  serialized while different devices proceed in parallel
- Provide copy-on-read snapshots (last fix + bounded history) to queries
  and to the broadcaster catch-up

Only the trip engine mutates DeviceState; everybody else reads snapshots.
"""

import asyncio
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from triptrack.Schemas.fix import Fix

DEFAULT_HISTORY_SIZE = 200


@dataclass
class DeviceState:
    """
    Mutable tracking state of one device.

    Attributes:
        last_fix: most recent fix, jitter included (reference for gap detection)
        last_trip_point: (lat, lng) of the last point written to the open trip
            (reference for jitter detection)
        history: most recent fixes, oldest evicted first
        active_trip_id: open trip, None when no trip is open
        next_seq: sequence number the next point of the open trip will get
    """
    history_size: int = DEFAULT_HISTORY_SIZE
    last_fix: Optional[Fix] = None
    last_trip_point: Optional[Tuple[float, float]] = None
    history: Deque[Fix] = field(init=False)
    active_trip_id: Optional[str] = None
    next_seq: int = 0

    def __post_init__(self):
        self.history = deque(maxlen=self.history_size)

    def record(self, fix: Fix):
        """Set the last known fix and push it into the history ring."""
        self.last_fix = fix
        self.history.append(fix)

    def reset(self):
        """Return to the empty state of a device that never reported."""
        self.last_fix = None
        self.last_trip_point = None
        self.history.clear()
        self.active_trip_id = None
        self.next_seq = 0


@dataclass(frozen=True)
class DeviceSnapshot:
    current: Optional[Fix]
    history: List[Fix]


class DeviceStateStore:
    """
    Process-scoped mapping device_id -> DeviceState.

    The mapping itself is guarded by a threading.Lock (entries can be looked
    up from any thread); per-device mutation is serialized by the asyncio
    lock returned by lock_for().
    """

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE):
        self.history_size = history_size
        self._states: Dict[str, DeviceState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._guard = threading.Lock()

    def get_or_create(self, device_id: str) -> DeviceState:
        with self._guard:
            state = self._states.get(device_id)
            if state is None:
                state = DeviceState(history_size=self.history_size)
                self._states[device_id] = state
            return state

    def lock_for(self, device_id: str) -> asyncio.Lock:
        with self._guard:
            lock = self._locks.get(device_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[device_id] = lock
            return lock

    def known_device_ids(self) -> List[str]:
        """Every device that ever reported, in first-seen order."""
        with self._guard:
            return list(self._states)

    def reset_all(self, device_ids: Optional[Iterable[str]] = None):
        """
        Clear devices to their initial empty form (every device by default).

        Called by TripEngine.reset_all() while it holds the device locks,
        after open trips are sealed. States are reset in place so that a
        holder of a state/lock keeps a valid handle.
        """
        with self._guard:
            if device_ids is None:
                states = list(self._states.values())
            else:
                states = [self._states[d] for d in device_ids if d in self._states]
        for state in states:
            state.reset()

    # ==========================================================
    # READ ACCESS
    # ==========================================================

    def snapshot(self, device_id: str) -> Optional[DeviceSnapshot]:
        """
        Copy of one device's last fix and history, or None for a device
        without live state (unknown or reset).
        """
        with self._guard:
            state = self._states.get(device_id)
        if state is None or state.last_fix is None:
            return None
        return DeviceSnapshot(current=state.last_fix, history=list(state.history))

    def snapshot_all(self) -> Dict[str, DeviceSnapshot]:
        result: Dict[str, DeviceSnapshot] = {}
        for device_id in self.known_device_ids():
            snap = self.snapshot(device_id)
            if snap is not None:
                result[device_id] = snap
        return result

    def device_ids(self) -> List[str]:
        """Devices that currently have a last known fix."""
        return list(self.snapshot_all())

    def last_fixes(self, device_filter: Iterable[str] = ()) -> List[Fix]:
        """
        Last known fix of every matching device; an empty filter matches all.
        """
        wanted = list(device_filter)
        device_ids = wanted if wanted else self.known_device_ids()
        fixes = []
        for device_id in device_ids:
            snap = self.snapshot(device_id)
            if snap is not None and snap.current is not None:
                fixes.append(snap.current)
        return fixes
