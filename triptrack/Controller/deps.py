# triptrack/Controller/deps.py

from typing import List, Optional, Tuple

from fastapi import Request, WebSocket

from triptrack.Services.tracking import TrackingService


def get_tracking(request: Request) -> TrackingService:
    """FastAPI dependency: the process-wide tracking service."""
    return request.app.state.tracking


def get_ws_tracking(ws: WebSocket) -> TrackingService:
    return ws.app.state.tracking


def parse_origins(csv_value: Optional[str]) -> Tuple[bool, List[str]]:
    """
    Parse a comma-separated origin list.

    Examples:
        "*" -> (True, ["*"])
        "https://app.com, https://admin.app.com" -> (False, ["https://app.com", "https://admin.app.com"])
        "" -> (False, [])
    """
    if not csv_value:
        return (False, [])

    csv_value = csv_value.strip()
    if csv_value == "*":
        return (True, ["*"])

    return (False, [origin.strip() for origin in csv_value.split(",") if origin.strip()])


def ws_origin_allowed(ws: WebSocket) -> bool:
    """
    Check a WebSocket handshake Origin against HTTP_ALLOWED_ORIGINS.

    Clients that send no Origin header (devices, scripts) are allowed.
    """
    allow_all, origins = parse_origins(ws.app.state.settings.HTTP_ALLOWED_ORIGINS)
    origin = ws.headers.get("origin")
    return allow_all or origin is None or origin in origins
