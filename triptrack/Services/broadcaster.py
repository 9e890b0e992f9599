# triptrack/Services/broadcaster.py
"""
Fix Broadcaster - live fan-out of accepted fixes to subscribers.

Each subscriber owns a bounded asyncio.Queue and an optional device filter
(empty = every device). publish() never waits: a subscriber whose queue is
full is skipped for that event, so a slow client cannot stall ingestion or
the other subscribers.

Lifecycle of a subscription:
1. subscribe(filter) -> the last known fix of every matching device is
   queued first (catch-up), then the subscription is registered for live
   fixes. Both happen in one synchronous step, so no live fix can be
   delivered before the catch-up or twice.
2. stream() yields fixes until the subscription is closed.
3. unsubscribe(handle) on disconnect; safe to call any number of times.
"""

import asyncio
import logging
import threading
import uuid
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, FrozenSet, Iterable, List, Optional

from triptrack.Schemas.fix import Fix
from triptrack.Services.device_state import DeviceStateStore

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256


@dataclass(eq=False)
class Subscription:
    """
    One live subscriber.

    Attributes:
        handle: unique key of the subscription in the registry
        device_filter: devices of interest, empty for all
        queue: outbound fixes not yet consumed
        dropped: fixes skipped because the queue was full
    """
    device_filter: FrozenSet[str]
    queue: asyncio.Queue
    handle: str = field(default_factory=lambda: uuid.uuid4().hex)
    dropped: int = 0
    closed: bool = False
    _wakeup: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    def matches(self, device_id: str) -> bool:
        return not self.device_filter or device_id in self.device_filter

    def offer(self, fix: Fix) -> bool:
        """Queue a fix without waiting; False if it had to be dropped."""
        if self.closed:
            return False
        try:
            self.queue.put_nowait(fix)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    def close(self):
        self.closed = True
        self._wakeup.set()

    async def next_fix(self, timeout: Optional[float] = None) -> Optional[Fix]:
        """
        Wait for the next fix.

        Returns None when the subscription is closed or the timeout expires.
        """
        if not self.queue.empty():
            return self.queue.get_nowait()
        if self.closed:
            return None

        get_task = asyncio.ensure_future(self.queue.get())
        close_task = asyncio.ensure_future(self._wakeup.wait())
        try:
            done, _ = await asyncio.wait(
                {get_task, close_task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            close_task.cancel()
            if not get_task.done():
                get_task.cancel()

        if get_task in done and not get_task.cancelled():
            return get_task.result()
        return None

    async def stream(self) -> AsyncIterator[Fix]:
        """Yield fixes until the subscription is closed."""
        while True:
            fix = await self.next_fix()
            if fix is None:
                return
            yield fix


class FixBroadcaster:
    """
    Registry of live subscriptions keyed by handle.

    The registry is guarded by a threading.Lock; publish() iterates a
    snapshot, so subscribe/unsubscribe may race with it safely.
    """

    def __init__(self, states: DeviceStateStore, queue_size: int = DEFAULT_QUEUE_SIZE):
        self.states = states
        self.queue_size = queue_size
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def subscribe(self, device_filter: Iterable[str] = ()) -> Subscription:
        """
        Register a subscriber and queue its catch-up snapshot.

        Args:
            device_filter: device ids of interest; empty for every device

        Returns:
            Subscription: the handle to stream from and later unsubscribe
        """
        subscription = Subscription(
            device_filter=frozenset(device_filter),
            queue=asyncio.Queue(maxsize=self.queue_size),
        )

        for fix in self.states.last_fixes(sorted(subscription.device_filter)):
            subscription.offer(fix)

        with self._lock:
            self._subscriptions[subscription.handle] = subscription
            total = len(self._subscriptions)

        logger.info(
            "[BROADCAST] Subscriber %s registered (filter=%s). Total: %d",
            subscription.handle[:8],
            ",".join(sorted(subscription.device_filter)) or "*",
            total,
        )
        return subscription

    def unsubscribe(self, subscription: Subscription | str) -> bool:
        """
        Remove a subscription. Idempotent.

        Returns:
            bool: True if this call removed it
        """
        handle = subscription if isinstance(subscription, str) else subscription.handle
        with self._lock:
            removed = self._subscriptions.pop(handle, None)
            total = len(self._subscriptions)

        if removed is None:
            return False

        removed.close()
        logger.info(
            "[BROADCAST] Subscriber %s removed (%d dropped). Total: %d",
            handle[:8], removed.dropped, total,
        )
        return True

    def publish(self, fix: Fix) -> int:
        """
        Deliver a fix to every matching subscriber, best effort.

        Returns:
            int: number of subscribers the fix was queued for
        """
        with self._lock:
            targets: List[Subscription] = list(self._subscriptions.values())

        delivered = 0
        for subscription in targets:
            if not subscription.matches(fix.device_id):
                continue
            if subscription.offer(fix):
                delivered += 1
            else:
                logger.debug(
                    "[BROADCAST] Subscriber %s is full, skipping fix for %s",
                    subscription.handle[:8], fix.device_id,
                )
        return delivered

    def close_all(self):
        """Close every subscription (shutdown)."""
        with self._lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.close()
