# triptrack/Services/udp.py
"""
UDP listener for position reports.

Devices that cannot hold an HTTP connection send one JSON datagram per
report:

    {"id": "bike1", "lat": 41.0082, "lng": 28.9784}
    {"ids": "bike1,bike2", "lat": "41.0082", "lng": "28.9784"}

The socket is served by a daemon thread. Each valid packet is handed to the
tracking service on the main event loop (run_coroutine_threadsafe), so UDP
and HTTP reports go through the same per-device serialization.

Flow:
1. Receive datagram
2. Parse JSON and validate coordinates (parse_packet)
3. Schedule TrackingService.ingest() on the main loop
"""

import asyncio
import json
import logging
import socket
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import List, Optional

from triptrack.Core.exceptions import ValidationError
from triptrack.Services.tracking import TrackingService
from triptrack.Services.validators import coerce_coordinate, parse_device_ids

logger = logging.getLogger(__name__)

BUFFER_SIZE = 65535  # maximum safe UDP packet size


@dataclass(frozen=True)
class UdpReport:
    device_ids: List[str]
    lat: float
    lng: float


def parse_packet(data: bytes, default_device_id: str = "default") -> UdpReport:
    """
    Decode and validate one datagram.

    Raises:
        ValueError: not UTF-8 JSON or not a JSON object
        ValidationError: lat/lng missing or not numeric
    """
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Invalid JSON packet: {e}") from e

    if not isinstance(payload, dict):
        raise ValueError("Packet must be a JSON object")

    raw_ids = payload.get("id") or payload.get("ids")
    if raw_ids is not None and not isinstance(raw_ids, (str, list)):
        raw_ids = str(raw_ids)
    return UdpReport(
        device_ids=parse_device_ids(raw_ids, default=default_device_id),
        lat=coerce_coordinate("lat", payload.get("lat")),
        lng=coerce_coordinate("lng", payload.get("lng")),
    )


class UdpServer:
    """
    Background UDP receiver bound to one tracking service.
    """

    def __init__(
        self,
        tracking: TrackingService,
        loop: asyncio.AbstractEventLoop,
        host: str = "0.0.0.0",
        port: int = 9001,
    ):
        self.tracking = tracking
        self.loop = loop
        self.host = host
        self.port = port
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def start(self) -> threading.Thread:
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._sock.bind((self.host, self.port))
        self._sock.settimeout(1.0)

        self._thread = threading.Thread(target=self._serve, daemon=True, name="UDP-Server")
        self._thread.start()
        logger.info("[UDP] Server listening on %s:%d", self.host, self.port)
        return self._thread

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
        if self._sock is not None:
            self._sock.close()
        logger.info("[UDP] Server stopped")

    def _serve(self):
        while not self._stop.is_set():
            try:
                data, addr = self._sock.recvfrom(BUFFER_SIZE)
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop.is_set():
                    logger.error("[UDP] Socket error: %s", e)
                break

            self.handle_datagram(data, addr)

    def handle_datagram(self, data: bytes, addr) -> Optional[Future]:
        """
        Validate one datagram and schedule its ingestion.

        Returns the concurrent Future of the scheduled ingestion, or None
        when the packet was rejected.
        """
        sender = f"{addr[0]}:{addr[1]}"
        try:
            report = parse_packet(data, self.tracking.default_device_id)
        except (ValueError, ValidationError) as e:
            logger.warning("[UDP] Rejected packet from %s: %s", sender, e)
            return None

        future = asyncio.run_coroutine_threadsafe(
            self.tracking.ingest(report.device_ids, report.lat, report.lng), self.loop
        )
        future.add_done_callback(lambda f: self._log_failure(f, sender))
        return future

    @staticmethod
    def _log_failure(future: Future, sender: str):
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("[UDP] Ingestion failed for packet from %s: %s", sender, error)


def start_udp_server(
    tracking: TrackingService,
    loop: asyncio.AbstractEventLoop,
    host: str,
    port: int,
) -> UdpServer:
    """
    Start the UDP listener in a daemon thread.

    Returns:
        UdpServer: running server (call stop() on shutdown)
    """
    server = UdpServer(tracking, loop, host, port)
    server.start()
    return server
