"""In-memory transport for testing.

Records sent payloads and lets tests inject inbound messages and closes.
No actual I/O.

Usage:
    transport = MockTransport()
    client = Client(ClientConfig(client_id="123", transport=transport))

    task = client.connect()
    transport.feed_ready({"id": "42", "username": "someone"})
    await task

    assert transport.sent == []
"""

from __future__ import annotations

import asyncio
from typing import Any

from ..config import TransportConfig
from ..errors import NoEndpointFoundError
from .base import CloseReason, Transport


class MockTransport(Transport):
    """Transport double driven by the test."""

    def __init__(
        self,
        config: TransportConfig | None = None,
        *,
        auto_ready: dict[str, Any] | None = None,
        fail_connect: bool = False,
    ):
        super().__init__(config or TransportConfig(client_id="mock"))
        self._sent: list[dict[str, Any]] = []
        self._responses: dict[str, tuple[Any, str | None]] = {}
        self._auto_ready = auto_ready
        self._fail_connect = fail_connect
        self.connect_calls = 0

    @property
    def sent(self) -> list[dict[str, Any]]:
        """Payloads sent through this transport."""
        return list(self._sent)

    def last_sent(self) -> dict[str, Any]:
        return self._sent[-1]

    def set_response(self, cmd: str, data: Any = None, evt: str | None = None) -> None:
        """Answer every future ``cmd`` with ``data`` (and ``evt``, e.g. "ERROR")."""
        self._responses[cmd] = (data, evt)

    def clear(self) -> None:
        """Clear recorded payloads and canned responses."""
        self._sent.clear()
        self._responses.clear()

    async def _do_connect(self) -> None:
        self.connect_calls += 1
        if self._fail_connect:
            raise NoEndpointFoundError("Mock endpoint unavailable")
        if self._auto_ready is not None:
            ready = self._auto_ready
            asyncio.get_running_loop().call_soon(self.feed_ready, ready)

    async def _do_close(self) -> None:
        self._emit_close()

    def send(self, payload: dict[str, Any]) -> None:
        """Record the payload and queue its canned response, if any."""
        self._sent.append(payload)
        if payload.get("cmd") in self._responses:
            data, evt = self._responses[payload["cmd"]]
            asyncio.get_running_loop().call_soon(self.reply, payload, data, evt)

    def feed(self, message: dict[str, Any]) -> None:
        """Deliver an inbound message as if read from the channel."""
        self._emit_message(message)

    def feed_ready(self, user: dict[str, Any] | None = None, **config: Any) -> None:
        """Deliver the READY handshake dispatch."""
        data: dict[str, Any] = {"v": 1, "config": config}
        if user is not None:
            data["user"] = user
        self.feed({"cmd": "DISPATCH", "evt": "READY", "nonce": None, "data": data})

    def reply(self, payload: dict[str, Any], data: Any = None, evt: str | None = None) -> None:
        """Answer a previously sent payload, echoing its nonce."""
        self.feed({"cmd": payload["cmd"], "evt": evt, "nonce": payload.get("nonce"), "data": data})

    def drop(self, code: int | None = None, message: str = "") -> None:
        """Simulate the channel closing from the remote side."""
        reason = CloseReason(code=code, message=message) if code is not None else None
        self._emit_close(reason)
