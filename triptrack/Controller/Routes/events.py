# triptrack/Controller/Routes/events.py
"""
Live position streams.

    GET /events?ids=bike1,bike2     Server-Sent Events
    WS  /ws/events?ids=bike1,bike2  WebSocket (one JSON text frame per fix)

Both start with the last known position of every matching device, then
forward live fixes. No ids (or an empty list) means every device.

Event payload:
    {"id": "bike1", "lat": 41.0082, "lng": 28.9784, "timestamp": "2025-01-02T10:15:00Z"}
"""

import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from triptrack.Controller.deps import get_tracking, get_ws_tracking, ws_origin_allowed
from triptrack.Services.broadcaster import Subscription
from triptrack.Services.fix_serialization import serialize_fix
from triptrack.Services.tracking import TrackingService
from triptrack.Services.validators import parse_device_ids

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _stream_filter(query_params) -> list:
    return parse_device_ids(query_params.get("ids") or query_params.get("id"))


# ============================================================
# SERVER-SENT EVENTS
# ============================================================

@router.get("/events")
async def events_sse(request: Request, tracking: TrackingService = Depends(get_tracking)):
    """
    Server-Sent Events stream of live fixes.

    A comment line (": keep-alive") is sent whenever no fix arrived for
    SSE_KEEPALIVE_S seconds, so proxies keep the connection open.
    """
    device_filter = _stream_filter(request.query_params)
    keepalive = request.app.state.settings.SSE_KEEPALIVE_S

    async def event_stream():
        subscription = tracking.subscribe(device_filter)
        try:
            while not subscription.closed:
                fix = await subscription.next_fix(timeout=keepalive)
                if fix is None:
                    if subscription.closed or await request.is_disconnected():
                        break
                    yield ": keep-alive\n\n"
                    continue
                yield f"data: {json.dumps(serialize_fix(fix))}\n\n"
        finally:
            tracking.unsubscribe(subscription)

    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=SSE_HEADERS)


# ============================================================
# WEBSOCKET
# ============================================================

async def _forward_fixes(ws: WebSocket, subscription: Subscription):
    async for fix in subscription.stream():
        await ws.send_text(json.dumps(serialize_fix(fix)))


async def _drain_client(ws: WebSocket):
    """Consume client frames until the peer disconnects."""
    try:
        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws/events")
async def events_ws(ws: WebSocket, tracking: TrackingService = Depends(get_ws_tracking)):
    if not ws_origin_allowed(ws):
        logger.warning("[WS] Connection rejected - unauthorized origin: %s", ws.headers.get("origin"))
        await ws.close(code=1008)
        return

    await ws.accept()
    subscription = tracking.subscribe(_stream_filter(ws.query_params))

    sender = asyncio.create_task(_forward_fixes(ws, subscription))
    receiver = asyncio.create_task(_drain_client(ws))
    try:
        done, _ = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        if sender in done and sender.exception() is not None:
            logger.debug("[WS] Event stream ended: %s", sender.exception())
        elif sender in done:
            # subscription closed by the server (shutdown)
            with contextlib.suppress(Exception):
                await ws.close()
    finally:
        for task in (sender, receiver):
            task.cancel()
        for task in (sender, receiver):
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        tracking.unsubscribe(subscription)
