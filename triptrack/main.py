"""
triptrack/main.py
============================================
FastAPI Application for Trip Tracking
============================================

Entry point of the tracking service: devices report positions, the service
splits each device's stream into trips, persists them and pushes every
accepted position to live subscribers.

Architecture Overview:
---------------------
- REST API: report positions, query live state, history and trips
- SSE / WebSocket: live position streams (/events, /ws/events)
- WebSocket: real-time system logs streamed via /logs
- UDP Server (optional): JSON position reports from devices
- Background writer: ordered, non-blocking trip persistence

Run:
    uvicorn triptrack.main:app --host 0.0.0.0 --port 8000
"""

# Environment Configuration
from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from triptrack.Controller.deps import parse_origins, ws_origin_allowed
from triptrack.Controller.Routes import events, locations
from triptrack.Core import log_ws
from triptrack.Core.config import Settings, settings
from triptrack.Core.exceptions import PersistenceError, ValidationError
from triptrack.Core.logger import configure_logging
from triptrack.Services.tracking import TrackingService
from triptrack.Services.trip_store import TripStore
from triptrack.Services.udp import start_udp_server

logger = logging.getLogger("triptrack.main")


# ============================================================
# ROOT PATH HANDLING
# ============================================================
def _normalize_root_path(value: str) -> str:
    value = (value or "").strip()
    if not value:
        return ""
    if not value.startswith("/"):
        value = "/" + value
    return value.rstrip("/")


class StripPrefixMiddleware(BaseHTTPMiddleware):
    """
    Remove the ROOT_PATH prefix from incoming HTTP requests.

    Example:
        ROOT_PATH = "/dev/tracker"
        Incoming request: /dev/tracker/location?id=bike1
        FastAPI receives: /location?id=bike1
    """

    def __init__(self, app, prefix: str):
        super().__init__(app)
        self.prefix = prefix

    async def dispatch(self, request, call_next):
        path = request.url.path

        # Redirect bare prefix to prefix with trailing slash
        if path == self.prefix:
            return RedirectResponse(url=self.prefix + "/", status_code=307)

        if path.startswith(self.prefix + "/"):
            request.scope["path"] = path[len(self.prefix):] or "/"

        return await call_next(request)


# ============================================================
# APPLICATION FACTORY
# ============================================================
def create_app(app_settings: Optional[Settings] = None, store: Optional[TripStore] = None) -> FastAPI:
    """
    Build the application.

    Args:
        app_settings: configuration (defaults to the environment-derived settings)
        store: trip store to use instead of the one selected by PERSISTENCE_BACKEND

    Startup Sequence:
        1. Configure logging and the /logs WebSocket loop
        2. Build the tracking service, seal trips left open by a previous run
        3. Start the background writer and, if enabled, the UDP listener

    Shutdown Sequence:
        - UDP listener stopped
        - Pending trip writes flushed, live subscribers closed
        - Trip store released
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(app_settings.LOG_LEVEL)

        loop = asyncio.get_running_loop()
        log_ws.log_ws_manager.set_main_loop(loop)

        tracking = TrackingService.from_settings(app_settings, store)
        await tracking.start()
        app.state.tracking = tracking

        udp_server = None
        if app_settings.UDP_ENABLED:
            logger.info("[SERVICES] Starting UDP server for position reports...")
            udp_server = start_udp_server(tracking, loop, app_settings.UDP_HOST, app_settings.UDP_PORT)
        else:
            logger.info("[SERVICES] UDP service is disabled")

        logger.info("[STARTUP] Application initialization complete")

        yield

        logger.info("[SHUTDOWN] Application shutdown initiated")
        if udp_server is not None:
            udp_server.stop()
        await tracking.stop()
        log_ws.log_ws_manager.set_main_loop(None)

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        version=app_settings.PROJECT_VERSION,
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    # ============================================================
    # MIDDLEWARE REGISTRATION
    # ============================================================
    # Middlewares are executed in REVERSE order of registration
    root_path = _normalize_root_path(app_settings.ROOT_PATH)
    if root_path:
        app.add_middleware(StripPrefixMiddleware, prefix=root_path)

    allow_all, origins = parse_origins(app_settings.HTTP_ALLOWED_ORIGINS)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ============================================================
    # ERROR MAPPING
    # ============================================================
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"error": "lat and lng required", "detail": str(exc)})

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error("[HTTP] %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"error": "trip store unavailable"})

    # ============================================================
    # HEALTH CHECK
    # ============================================================
    @app.get("/health")
    async def health(request: Request):
        tracking: TrackingService = request.app.state.tracking
        return {
            "status": "ok",
            "devices": len(tracking.device_ids()),
            "subscribers": tracking.broadcaster.subscriber_count,
            "pending_writes": tracking.writer.pending,
            "persistence_failures": tracking.writer.failures,
        }

    # ============================================================
    # REST API ROUTES
    # ============================================================
    app.include_router(locations.router, tags=["locations"])
    app.include_router(events.router, tags=["events"])

    # ============================================================
    # LOG WEBSOCKET
    # ============================================================
    @app.websocket("/logs")
    async def websocket_logs(ws: WebSocket):
        """
        Real-time system logs.

        Message Format:
            {"msg_type": "log" | "warning" | "error", "logger": "...",
             "message": "...", "timestamp": "2025-01-02T10:15:00Z"}
        """
        await socket_handler(ws, log_ws.log_ws_manager)

    return app


async def socket_handler(ws: WebSocket, manager):
    """
    WebSocket lifecycle for broadcast managers: origin check, register,
    message loop, unregister.
    """
    if not ws_origin_allowed(ws):
        logger.warning("[WS] Connection rejected - unauthorized origin: %s", ws.headers.get("origin"))
        await ws.close(code=1008)
        return

    await manager.register(ws)

    try:
        while True:
            message = await ws.receive_text()
            await manager.handle_message(ws, message)
    except Exception as e:
        logger.debug("[WS] Connection closed: %s", e)
    finally:
        manager.unregister(ws)


app = create_app()
