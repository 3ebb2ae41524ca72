"""Unit tests for the loopback WebSocket transport.

The websockets library is replaced by an in-memory fake so that
port discovery, framing and close handling can be tested without a server.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import patch
from urllib.parse import urlparse

import pytest

from discord_rpc_client import (
    CloseReason,
    ConnectionEndedError,
    NoEndpointFoundError,
    TransportConfig,
    WebSocketTransport,
)
from discord_rpc_client.transport import TransportEvent, TransportState


class FakeWebSocket:
    """Minimal stand-in for a websockets client connection."""

    def __init__(self, url: str):
        self.url = url
        self.sent: list[str] = []
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.close_calls = 0
        self.send_error: Exception | None = None
        self._inbox: asyncio.Queue[str | Exception | None] = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls += 1
        self.remote_close(code, reason)

    def push(self, data: str) -> None:
        """Deliver an inbound text frame."""
        self._inbox.put_nowait(data)

    def fail(self, error: Exception) -> None:
        """Make the next read raise ``error``."""
        self._inbox.put_nowait(error)

    def remote_close(self, code: int, reason: str = "") -> None:
        if self.close_code is not None:
            return
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(None)

    async def __aiter__(self):
        while True:
            data = await self._inbox.get()
            if data is None:
                return
            if isinstance(data, Exception):
                raise data
            yield data


class FakeServer:
    """Accepts connections on a chosen set of ports and refuses the rest."""

    def __init__(self, accepting: set[int]):
        self.accepting = accepting
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.sockets: list[FakeWebSocket] = []

    async def connect(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls.append((url, kwargs))
        if urlparse(url).port not in self.accepting:
            raise ConnectionRefusedError(f"refused: {url}")
        ws = FakeWebSocket(url)
        self.sockets.append(ws)
        return ws

    @property
    def tried_ports(self) -> list[int | None]:
        return [urlparse(url).port for url, _ in self.calls]


async def settle() -> None:
    """Let reader and writer tasks run."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def config() -> TransportConfig:
    return TransportConfig(client_id="1234567890")


def patched(server: FakeServer):
    return patch(
        "discord_rpc_client.transport.websocket.websockets.connect",
        new=server.connect,
    )


# =============================================================================
# Tests: port discovery
# =============================================================================


class TestPortDiscovery:
    """Test discovery of the endpoint's port."""

    @pytest.mark.asyncio
    async def test_first_port_accepts(self, config):
        """Discovery stops at the first port that opens."""
        server = FakeServer({6463, 6464})
        transport = WebSocketTransport(config)

        with patched(server):
            await transport.connect()

        assert server.tried_ports == [6463]
        assert transport.port == 6463
        assert transport.state == TransportState.CONNECTED
        await transport.close()

    @pytest.mark.asyncio
    async def test_last_port_accepts(self, config):
        """Ports are tried in increasing order until one opens."""
        server = FakeServer({6472})
        transport = WebSocketTransport(config)

        with patched(server):
            await transport.connect()

        assert server.tried_ports == list(range(6463, 6473))
        assert transport.port == 6472
        await transport.close()

    @pytest.mark.asyncio
    async def test_no_port_accepts(self, config):
        """Every refused port is recorded on the NoEndpointFoundError."""
        server = FakeServer(set())
        transport = WebSocketTransport(config)

        with patched(server), pytest.raises(NoEndpointFoundError) as exc_info:
            await transport.connect()

        assert len(exc_info.value.attempts) == 10
        assert all(isinstance(e, ConnectionRefusedError) for _, e in exc_info.value.attempts)
        assert "6463-6472" in exc_info.value.message
        assert transport.state == TransportState.DISCONNECTED
        assert transport.port is None

    @pytest.mark.asyncio
    async def test_port_timeout_moves_on(self, config):
        """A port that times out is skipped like a refused one."""
        calls: list[int | None] = []

        async def connect(url: str, **kwargs: Any) -> FakeWebSocket:
            port = urlparse(url).port
            calls.append(port)
            if port == 6463:
                raise TimeoutError("timed out during opening handshake")
            return FakeWebSocket(url)

        transport = WebSocketTransport(config)
        with patch("discord_rpc_client.transport.websocket.websockets.connect", new=connect):
            await transport.connect()

        assert calls == [6463, 6464]
        assert transport.port == 6464
        await transport.close()

    @pytest.mark.asyncio
    async def test_url_and_origin(self, config):
        """The URL carries version and client id; the origin header is sent."""
        server = FakeServer({6463})
        transport = WebSocketTransport(config)

        with patched(server):
            await transport.connect()

        url, kwargs = server.calls[0]
        assert url == "ws://127.0.0.1:6463/?v=1&client_id=1234567890"
        assert kwargs["origin"] == "https://localhost"
        assert kwargs["open_timeout"] == 10.0
        await transport.close()


# =============================================================================
# Tests: messages
# =============================================================================


class TestMessages:
    """Test inbound parsing and outbound ordering."""

    @pytest.mark.asyncio
    async def test_inbound_messages_in_order(self, config):
        """Each text frame becomes one message event, in receipt order."""
        server = FakeServer({6463})
        transport = WebSocketTransport(config)
        received: list[Any] = []
        transport.on(TransportEvent.MESSAGE, received.append)

        with patched(server):
            await transport.connect()
        ws = server.sockets[0]
        ws.push(json.dumps({"cmd": "DISPATCH", "evt": "READY", "data": {"v": 1}}))
        ws.push(json.dumps({"cmd": "GET_GUILDS", "nonce": "n1", "data": {}}))
        await settle()

        assert [m["cmd"] for m in received] == ["DISPATCH", "GET_GUILDS"]
        await transport.close()

    @pytest.mark.asyncio
    async def test_invalid_json_is_skipped(self, config):
        """A frame that is not JSON is dropped; the connection stays open."""
        server = FakeServer({6463})
        transport = WebSocketTransport(config)
        received: list[Any] = []
        transport.on(TransportEvent.MESSAGE, received.append)

        with patched(server):
            await transport.connect()
        ws = server.sockets[0]
        ws.push("{not json")
        ws.push(json.dumps({"cmd": "DISPATCH", "evt": "READY"}))
        await settle()

        assert received == [{"cmd": "DISPATCH", "evt": "READY"}]
        assert transport.is_connected
        await transport.close()

    @pytest.mark.asyncio
    async def test_send_preserves_order(self, config):
        """Queued payloads reach the socket in call order."""
        server = FakeServer({6463})
        transport = WebSocketTransport(config)

        with patched(server):
            await transport.connect()
        for i in range(3):
            transport.send({"cmd": "GET_GUILDS", "nonce": str(i)})
        await settle()

        ws = server.sockets[0]
        assert [json.loads(data)["nonce"] for data in ws.sent] == ["0", "1", "2"]
        await transport.close()

    @pytest.mark.asyncio
    async def test_send_when_closed_is_dropped(self, config):
        """send() on a closed transport does not raise."""
        transport = WebSocketTransport(config)
        transport.send({"cmd": "GET_GUILDS"})
        assert transport.state == TransportState.DISCONNECTED


# =============================================================================
# Tests: close
# =============================================================================


class TestClose:
    """Test close event semantics."""

    @pytest.mark.asyncio
    async def test_local_close_emits_once(self, config):
        """close() emits exactly one close event without a reason."""
        server = FakeServer({6463})
        transport = WebSocketTransport(config)
        reasons: list[CloseReason | None] = []
        transport.on(TransportEvent.CLOSE, reasons.append)

        with patched(server):
            await transport.connect()
        await transport.close()
        await transport.close()
        await settle()

        assert reasons == [None]
        assert transport.state == TransportState.DISCONNECTED
        assert transport.port is None

    @pytest.mark.asyncio
    async def test_remote_close_carries_reason(self, config):
        """An abnormal close code is passed on as a CloseReason."""
        server = FakeServer({6463})
        transport = WebSocketTransport(config)
        reasons: list[CloseReason | None] = []
        transport.on(TransportEvent.CLOSE, reasons.append)

        with patched(server):
            await transport.connect()
        server.sockets[0].remote_close(4000, "Invalid Client ID")
        await settle()

        assert reasons == [CloseReason(code=4000, message="Invalid Client ID")]
        assert not transport.is_connected

    @pytest.mark.asyncio
    async def test_reconnect_after_close(self, config):
        """A closed transport can be connected again."""
        server = FakeServer({6463})
        transport = WebSocketTransport(config)
        closes: list[CloseReason | None] = []
        transport.on(TransportEvent.CLOSE, closes.append)

        with patched(server):
            await transport.connect()
            server.sockets[0].remote_close(1000)
            await settle()
            await transport.connect()

        assert len(server.sockets) == 2
        assert transport.is_connected
        await transport.close()
        assert closes == [None, None]

    @pytest.mark.asyncio
    async def test_read_error_is_fatal(self, config):
        """A channel error while reading closes the socket and emits close once."""
        server = FakeServer({6463})
        transport = WebSocketTransport(config)
        reasons: list[CloseReason | None] = []
        transport.on(TransportEvent.CLOSE, reasons.append)

        with patched(server):
            await transport.connect()
        ws = server.sockets[0]
        ws.fail(OSError("connection reset"))
        await settle()

        assert ws.close_calls == 1
        assert reasons == [None]
        assert transport.state == TransportState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_write_error_is_fatal(self, config):
        """A channel error while writing closes the socket and emits close once."""
        server = FakeServer({6463})
        transport = WebSocketTransport(config)
        reasons: list[CloseReason | None] = []
        transport.on(TransportEvent.CLOSE, reasons.append)

        with patched(server):
            await transport.connect()
        ws = server.sockets[0]
        ws.send_error = OSError("broken pipe")
        transport.send({"cmd": "GET_GUILDS", "nonce": "n1"})
        await settle()

        assert ws.sent == []
        assert ws.close_calls == 1
        assert reasons == [None]
        assert not transport.is_connected

    @pytest.mark.asyncio
    async def test_close_while_connecting(self, config):
        """close() during port discovery wins; the late socket is released."""
        server = FakeServer({6463})
        gate = asyncio.Event()
        opened: list[FakeWebSocket] = []

        async def connect(url: str, **kwargs: Any) -> FakeWebSocket:
            await gate.wait()
            ws = await server.connect(url, **kwargs)
            opened.append(ws)
            return ws

        transport = WebSocketTransport(config)
        reasons: list[CloseReason | None] = []
        transport.on(TransportEvent.CLOSE, reasons.append)

        with patch("discord_rpc_client.transport.websocket.websockets.connect", new=connect):
            connecting = asyncio.create_task(transport.connect())
            await settle()
            assert transport.state == TransportState.CONNECTING

            await transport.close()
            gate.set()
            with pytest.raises(ConnectionEndedError):
                await connecting
        await settle()

        assert reasons == [None]
        assert transport.state == TransportState.DISCONNECTED
        assert not transport.is_connected
        assert opened[0].close_calls == 1
