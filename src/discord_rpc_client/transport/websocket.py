"""Loopback WebSocket transport.

The endpoint listens on one of ten consecutive loopback ports, but which one
is not known in advance. Ports are tried in increasing order and the first
successful open wins.

Wire format:
- Outbound: one JSON text frame per command
- Inbound: one JSON text frame per message
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import TransportConfig
from ..errors import NoEndpointFoundError
from .base import CloseReason, Transport

logger = logging.getLogger(__name__)

# Close codes that carry no useful reason for callers
_NORMAL_CLOSE_CODES = {None, 1000, 1005}


class WebSocketTransport(Transport):
    """Transport over a loopback WebSocket with port discovery."""

    def __init__(self, config: TransportConfig):
        super().__init__(config)
        self._ws: Any = None  # websockets ClientConnection
        self._port: int | None = None
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._reader_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None

    @property
    def port(self) -> int | None:
        """Port of the current connection, if any."""
        return self._port

    async def _do_connect(self) -> None:
        """Try candidate ports in order; keep the first that opens."""
        attempts: list[tuple[str, BaseException]] = []

        for port in self.config.ports():
            url = self.config.websocket_url(port)
            try:
                ws = await websockets.connect(
                    url,
                    origin=self.config.origin,
                    open_timeout=self.config.open_timeout,
                )
            except (OSError, TimeoutError, WebSocketException) as e:
                logger.debug(f"No endpoint on port {port}: {e!r}")
                attempts.append((url, e))
                continue

            self._ws = ws
            self._port = port
            break
        else:
            raise NoEndpointFoundError(
                f"No local endpoint found on ports "
                f"{self.config.base_port}-{self.config.base_port + self.config.port_count - 1}",
                attempts=attempts,
            )

        logger.debug(f"WebSocket open on port {self._port}")
        self._outbox = asyncio.Queue()
        self._writer_task = asyncio.create_task(self._write_loop(ws))
        self._reader_task = asyncio.create_task(self._read_loop(ws))

    async def _do_close(self) -> None:
        if self._ws is None:
            self._emit_close()
            return
        with contextlib.suppress(Exception):
            await self._ws.close()

    def send(self, payload: dict[str, Any]) -> None:
        """Queue ``payload`` for the writer task."""
        if not self.is_connected:
            logger.debug(f"Dropping message on closed WebSocket: {payload.get('cmd')}")
            return
        self._outbox.put_nowait(json.dumps(payload))

    async def _write_loop(self, ws: Any) -> None:
        """Write queued messages in order."""
        try:
            while True:
                data = await self._outbox.get()
                await ws.send(data)
        except asyncio.CancelledError:
            pass
        except ConnectionClosed:
            # Reader observes the same close and emits it
            pass
        except Exception as e:
            logger.error(f"WebSocket send error: {e}")
            with contextlib.suppress(Exception):
                await ws.close()

    async def _read_loop(self, ws: Any) -> None:
        """Parse inbound frames and re-emit them; emit close when done."""
        try:
            async for data in ws:
                try:
                    message = json.loads(data)
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning(f"Invalid WebSocket message: {e}")
                    continue
                self._emit_message(message)
        except ConnectionClosed:
            pass
        except Exception as e:
            # Channel errors are fatal to this connection
            logger.error(f"WebSocket receive error: {e}")
            with contextlib.suppress(Exception):
                await ws.close()
        finally:
            await self._finish(ws)

    async def _finish(self, ws: Any) -> None:
        if self._writer_task is not None:
            self._writer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._writer_task
            self._writer_task = None

        code = getattr(ws, "close_code", None)
        reason = None
        if code not in _NORMAL_CLOSE_CODES:
            reason = CloseReason(code=code, message=getattr(ws, "close_reason", None) or "")

        self._ws = None
        self._port = None
        self._reader_task = None
        self._emit_close(reason)
