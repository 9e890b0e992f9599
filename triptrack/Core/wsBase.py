"""
WebSocket Base Manager Module
==============================

Thread-safe foundation for WebSocket endpoints that push the same message
to every connected client (currently the live log stream at /logs).

Architecture:
------------
- Client registry protected by a threading.Lock, since messages can be
  produced by background threads (UDP listener, persistence worker)
- Broadcast works on a snapshot of the registry, so no lock is held while
  awaiting socket I/O
- Clients that fail during a send are dropped
- send_from_thread() schedules a broadcast on the main event loop

Usage Example:
-------------
    manager = CustomWebSocketManager()
    manager.set_main_loop(asyncio.get_running_loop())

    @app.websocket("/custom")
    async def endpoint(ws: WebSocket):
        await manager.register(ws)
        try:
            while True:
                await manager.handle_message(ws, await ws.receive_text())
        finally:
            manager.unregister(ws)
"""

import asyncio
import json
import logging
import threading
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class WebSocketManager:
    """
    Base WebSocket manager for multiple concurrent client connections.

    Attributes:
        clients (List[WebSocket]): Currently active connections
        main_loop (Optional[asyncio.AbstractEventLoop]): Loop used by send_from_thread()
    """

    def __init__(self):
        self.clients: List[WebSocket] = []
        self.main_loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock = threading.Lock()

    def set_main_loop(self, loop: Optional[asyncio.AbstractEventLoop]):
        """
        Register the application's event loop (called from the lifespan).

        Passing None detaches the manager, after which send_from_thread()
        becomes a no-op.
        """
        self.main_loop = loop

    async def register(self, ws: WebSocket):
        """
        Accept and register a new client.

        The client is added before the handshake so nothing broadcast in
        between is lost; a failed handshake removes it again.
        """
        with self._lock:
            if ws not in self.clients:
                self.clients.append(ws)

        try:
            await ws.accept()
        except Exception:
            self.unregister(ws)
            raise

    def unregister(self, ws: WebSocket) -> bool:
        """
        Remove a client from the registry. Idempotent.

        Returns:
            bool: True if the client was registered, False otherwise
        """
        with self._lock:
            if ws in self.clients:
                self.clients.remove(ws)
                return True
        return False

    @property
    def has_clients(self) -> bool:
        with self._lock:
            return len(self.clients) > 0

    async def broadcast(self, message: Dict[str, Any]):
        """
        Send a JSON message to every connected client.

        Clients whose send raises are unregistered after the pass.
        """
        with self._lock:
            current_clients = list(self.clients)

        text = json.dumps(message, default=str)
        to_remove = []
        for ws in current_clients:
            try:
                await ws.send_text(text)
            except Exception:
                to_remove.append(ws)

        for ws in to_remove:
            self.unregister(ws)

    def send_from_thread(self, message: Dict[str, Any]):
        """
        Schedule a broadcast on the main loop from any thread.

        Fire and forget: returns immediately, does nothing when no client is
        connected or no loop has been registered.
        """
        if not self.has_clients or self.main_loop is None or self.main_loop.is_closed():
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self.main_loop:
            self.main_loop.create_task(self.broadcast(message))
        else:
            asyncio.run_coroutine_threadsafe(self.broadcast(message), self.main_loop)

    async def handle_message(self, ws: WebSocket, message: str):
        """
        Handle a text message sent by a client.

        Template method; subclasses override it. The default ignores input.
        """
        logger.debug("[WSBase] Ignoring client message: %s", message)
