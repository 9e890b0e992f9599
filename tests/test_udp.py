# tests/test_udp.py

import asyncio
import json

import pytest

from triptrack.Core.exceptions import ValidationError
from triptrack.Services.tracking import TrackingService
from triptrack.Services.udp import UdpServer, parse_packet


def packet(**payload) -> bytes:
    return json.dumps(payload).encode("utf-8")


class TestParsePacket:
    def test_single_device(self) -> None:
        report = parse_packet(packet(id="bike1", lat=41.0, lng=29.0))
        assert report.device_ids == ["bike1"]
        assert (report.lat, report.lng) == (41.0, 29.0)

    def test_id_list_and_string_coordinates(self) -> None:
        report = parse_packet(packet(ids="bike1,bike2", lat="41.0", lng="29.0"))
        assert report.device_ids == ["bike1", "bike2"]
        assert report.lat == 41.0

    def test_numeric_id(self) -> None:
        assert parse_packet(packet(id=7, lat=41.0, lng=29.0)).device_ids == ["7"]

    def test_default_device(self) -> None:
        assert parse_packet(packet(lat=41.0, lng=29.0), "fallback").device_ids == ["fallback"]

    @pytest.mark.parametrize("data", [b"not json", b"\xff\xfe", b"[1, 2]"])
    def test_malformed(self, data: bytes) -> None:
        with pytest.raises(ValueError):
            parse_packet(data)

    def test_missing_coordinate(self) -> None:
        with pytest.raises(ValidationError):
            parse_packet(packet(id="bike1", lat=41.0))


class TestHandleDatagram:
    @pytest.mark.asyncio
    async def test_valid_packet_is_ingested_on_loop(self, tracking: TrackingService) -> None:
        server = UdpServer(tracking, asyncio.get_running_loop())

        future = server.handle_datagram(packet(id="bike1", lat=41.0, lng=29.0), ("10.0.0.5", 5000))
        results = await asyncio.wrap_future(future)

        assert results[0].recorded
        assert tracking.device_ids() == ["bike1"]

    @pytest.mark.asyncio
    async def test_invalid_packet_is_dropped(self, tracking: TrackingService) -> None:
        server = UdpServer(tracking, asyncio.get_running_loop())

        assert server.handle_datagram(b"garbage", ("10.0.0.5", 5000)) is None
        assert tracking.device_ids() == []
