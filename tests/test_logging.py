# tests/test_logging.py

import logging

import pytest

from triptrack.Core.log_ws import LogWebSocketManager, WebSocketLogHandler
from triptrack.Core.logger import PACKAGE_LOGGER, configure_logging


class FakeSocket:
    def __init__(self, fail: bool = False):
        self.sent = []
        self.accepted = False
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_text(self, text: str):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(text)


def make_record(level: int, message: str) -> logging.LogRecord:
    return logging.LogRecord("triptrack.test", level, __file__, 1, message, None, None)


class TestConfigureLogging:
    def test_handlers_added_once(self) -> None:
        root = configure_logging("INFO")
        count = len(root.handlers)

        configure_logging("DEBUG")

        assert root is logging.getLogger(PACKAGE_LOGGER)
        assert len(root.handlers) == count
        assert root.level == logging.DEBUG
        assert any(isinstance(h, WebSocketLogHandler) for h in root.handlers)


class TestWebSocketLogHandler:
    def test_silent_without_clients(self) -> None:
        manager = LogWebSocketManager()
        sent = []
        manager.send_from_thread = sent.append

        WebSocketLogHandler(manager).emit(make_record(logging.INFO, "[ENGINE] hello"))

        assert sent == []

    def test_payload(self) -> None:
        manager = LogWebSocketManager()
        manager.clients.append(object())
        sent = []
        manager.send_from_thread = sent.append

        WebSocketLogHandler(manager).emit(make_record(logging.WARNING, "[UDP] Rejected packet"))

        (payload,) = sent
        assert payload["msg_type"] == "warning"
        assert payload["logger"] == "triptrack.test"
        assert payload["message"] == "[UDP] Rejected packet"
        assert payload["timestamp"].endswith("Z")


class TestWebSocketManager:
    @pytest.mark.asyncio
    async def test_broadcast_drops_failed_clients(self) -> None:
        manager = LogWebSocketManager()
        good, bad = FakeSocket(), FakeSocket(fail=True)
        await manager.register(good)
        await manager.register(bad)

        await manager.broadcast({"msg_type": "log", "message": "hi"})

        assert good.accepted and len(good.sent) == 1
        assert manager.clients == [good]

    def test_unregister_is_idempotent(self) -> None:
        manager = LogWebSocketManager()
        ws = FakeSocket()
        manager.clients.append(ws)

        assert manager.unregister(ws) is True
        assert manager.unregister(ws) is False
        assert manager.has_clients is False
