"""
Log WebSocket Management Module
================================

Streams application log records to WebSocket clients connected to /logs,
for live monitoring of ingestion, segmentation and persistence.

Message Format:
--------------
    {
        "msg_type": "log" | "warning" | "error",
        "logger": "triptrack.Services.trip_engine",
        "message": "[ENGINE] bike1: new trip TRIP_20250102_bike1_101500_3fa2c1",
        "timestamp": "2025-01-02T10:15:00Z"
    }

Frontend Connection:
-------------------
    const ws = new WebSocket('ws://localhost:8000/logs');
    ws.onmessage = (event) => {
        const log = JSON.parse(event.data);
        console.log(`[${log.msg_type}] ${log.message}`);
    };
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import WebSocket

from .wsBase import WebSocketManager


def _msg_type(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "error"
    if levelno >= logging.WARNING:
        return "warning"
    return "log"


class LogWebSocketManager(WebSocketManager):
    """
    WebSocket manager for the live log stream.

    Clients may send "ping" to check the connection; anything else is ignored.
    """

    async def handle_message(self, ws: WebSocket, message: str):
        if message.strip().lower() == "ping":
            await ws.send_json({"msg_type": "pong"})


class WebSocketLogHandler(logging.Handler):
    """
    logging.Handler that forwards records to the log WebSocket clients.

    Emitting is cheap when nobody is listening: the record is only formatted
    once at least one client is connected.
    """

    def __init__(self, manager: "LogWebSocketManager", level: int = logging.INFO):
        super().__init__(level)
        self.manager = manager

    def emit(self, record: logging.LogRecord):
        if not self.manager.has_clients:
            return
        try:
            payload: Dict[str, Any] = {
                "msg_type": _msg_type(record.levelno),
                "logger": record.name,
                "message": self.format(record),
                "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
                .isoformat()
                .replace("+00:00", "Z"),
            }
            self.manager.send_from_thread(payload)
        except Exception:
            self.handleError(record)


# ============================================================
# GLOBAL LOG WEBSOCKET MANAGER INSTANCE
# ============================================================
log_ws_manager = LogWebSocketManager()
