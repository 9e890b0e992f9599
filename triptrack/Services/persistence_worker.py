# triptrack/Services/persistence_worker.py
"""
Trip Writer - asynchronous, ordered front-end of the trip store.

The segmentation engine must not wait for durable writes, yet writes for the
same device/trip must reach the store in the order they were issued.

Async mode (started):
- trip ids are assigned up front, so open_trip() returns immediately
- every write is put on ONE FIFO queue
- one background task executes them one by one in a worker thread
  (asyncio.to_thread), so global issue order == execution order

Inline mode (not started): writes execute synchronously in the caller.

A failing write is logged and counted; it never reaches the engine and never
stops the worker (in-memory state stays authoritative for live tracking).
"""

import asyncio
import contextlib
import logging
from datetime import datetime
from typing import Any, Callable, List, Optional, Tuple

from triptrack.Core.exceptions import PersistenceError
from triptrack.Schemas.trip import Trip_get
from triptrack.Services.trip_store import TripStore, generate_trip_id

logger = logging.getLogger(__name__)

_WriteOp = Tuple[str, Optional[Callable[..., Any]], Tuple[Any, ...]]

# Queue marker: resolves its future once every earlier write has run
_BARRIER = "barrier"


class TripWriter:
    """
    Ordered write dispatcher in front of a TripStore.
    """

    def __init__(self, store: TripStore):
        self.store = store
        self.failures = 0
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None

    # ==========================================================
    # LIFECYCLE
    # ==========================================================

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def start(self):
        """
        Switch to async mode. Must be called from the event loop that will
        issue the writes.
        """
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="TripWriter")
        logger.info("[PERSIST] Background trip writer started")

    async def stop(self):
        """Flush queued writes, then stop the background task."""
        if not self.running:
            return
        await self._queue.join()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._queue = None
        logger.info("[PERSIST] Background trip writer stopped")

    async def drain(self):
        """
        Wait until every write issued before this call has been executed.

        Writes issued afterwards are not waited for, so a reader is never
        held up by devices that keep reporting.
        """
        if not self.running or self._queue is None:
            return
        done = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((_BARRIER, None, (done,)))
        await done

    # ==========================================================
    # WRITE OPERATIONS
    # ==========================================================

    async def open_trip(self, device_id: str, started_at: datetime) -> str:
        trip_id = generate_trip_id(device_id, started_at)
        self._submit(("open_trip", self.store.open_trip, (device_id, started_at, trip_id)))
        return trip_id

    async def close_trip(self, trip_id: str, ended_at: datetime):
        self._submit(("close_trip", self.store.close_trip, (trip_id, ended_at)))

    async def append_point(self, trip_id: str, seq: int, lat: float, lng: float, ts: datetime):
        self._submit(("append_point", self.store.append_point, (trip_id, seq, lat, lng, ts)))

    # ==========================================================
    # READ OPERATIONS
    # ==========================================================

    async def list_trips(self, device_id: str) -> List[Trip_get]:
        """
        Read a device's trips after flushing pending writes.

        Raises:
            PersistenceError: the store could not be read
        """
        await self.drain()
        return await asyncio.to_thread(self.store.list_trips, device_id)

    # ==========================================================
    # INTERNALS
    # ==========================================================

    def _submit(self, op: _WriteOp):
        if self.running and self._queue is not None:
            self._queue.put_nowait(op)
        else:
            name, fn, args = op
            self._execute(name, fn, args)

    def _execute(self, name: str, fn: Callable[..., Any], args: Tuple[Any, ...]):
        try:
            fn(*args)
        except PersistenceError as e:
            self.failures += 1
            logger.error("[PERSIST] %s", e)
        except Exception:
            self.failures += 1
            logger.exception("[PERSIST] Unexpected error during %s", name)

    async def _run(self):
        while True:
            name, fn, args = await self._queue.get()
            try:
                if name == _BARRIER:
                    done = args[0]
                    if not done.done():
                        done.set_result(None)
                    continue
                await asyncio.to_thread(self._execute, name, fn, args)
            finally:
                self._queue.task_done()
