"""Transport contract.

A transport owns one physical channel to the local endpoint and exposes:
- connect/close: lifecycle management
- send: fire-and-forget write of one JSON message
- ping: best-effort liveness check
- events: ``message`` (one per inbound frame, in receipt order) and
  ``close`` (exactly one per connection lifetime, with optional CloseReason)

Send failures are never raised from ``send``; they surface as ``close``.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..config import TransportConfig
from ..emitter import EventEmitter
from ..errors import ConnectionEndedError

logger = logging.getLogger(__name__)


class TransportState(str, Enum):
    """Connection state of a single transport."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


class TransportEvent(str, Enum):
    """Events emitted by every transport."""

    MESSAGE = "message"
    CLOSE = "close"


@dataclass
class CloseReason:
    """Structured reason attached to a ``close`` event."""

    code: int
    message: str

    @classmethod
    def from_data(cls, data: Any) -> CloseReason | None:
        if isinstance(data, dict) and "code" in data:
            return cls(code=int(data["code"]), message=str(data.get("message") or ""))
        return None


class Transport(EventEmitter, ABC):
    """Base class for transports.

    Subclasses implement ``_do_connect``, ``_do_close`` and ``send``, and call
    ``_emit_message`` / ``_emit_close`` from their reader.
    """

    def __init__(self, config: TransportConfig):
        super().__init__()
        self.config = config
        self._state = TransportState.DISCONNECTED
        self._closed: asyncio.Event | None = None

    @property
    def state(self) -> TransportState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == TransportState.CONNECTED

    async def connect(self) -> None:
        """Open the channel.

        No-op when already connected or connecting. A transport that has
        closed can be connected again.

        Raises:
            NoEndpointFoundError: If no local endpoint accepted the connection
            ConnectionEndedError: If close() ran before the channel opened
        """
        if self._state in (TransportState.CONNECTED, TransportState.CONNECTING):
            return

        self._state = TransportState.CONNECTING
        self._closed = asyncio.Event()
        try:
            await self._do_connect()
        except BaseException:
            self._state = TransportState.DISCONNECTED
            self._closed.set()
            raise

        if self._closed.is_set():
            # close() won the race; release the channel it never saw
            await self._do_close()
            logger.debug(f"{self.__class__.__name__} closed while connecting")
            raise ConnectionEndedError("Transport closed while connecting")

        self._state = TransportState.CONNECTED
        logger.info(f"{self.__class__.__name__} connected")

    async def close(self) -> None:
        """Close the channel and wait until ``close`` has been emitted.

        Safe to call while already closing or when never connected.
        """
        if self._closed is None or self._closed.is_set():
            return
        if self._state != TransportState.CLOSING:
            self._state = TransportState.CLOSING
            await self._do_close()
        await self._closed.wait()

    def ping(self) -> None:  # noqa: B027
        """Best-effort liveness check. Default is a no-op."""

    @abstractmethod
    def send(self, payload: dict[str, Any]) -> None:
        """Serialize ``payload`` as JSON and write it as one message."""
        ...

    @abstractmethod
    async def _do_connect(self) -> None:
        """Implementation-specific connection logic."""
        ...

    @abstractmethod
    async def _do_close(self) -> None:
        """Begin closing the channel. The reader must then call _emit_close."""
        ...

    def _emit_message(self, payload: Any) -> None:
        if self._state == TransportState.DISCONNECTED:
            return
        self.emit(TransportEvent.MESSAGE, payload)

    def _emit_close(self, reason: CloseReason | None = None) -> None:
        """Emit ``close`` once for the current connection lifetime."""
        if self._closed is None or self._closed.is_set():
            return
        self._state = TransportState.DISCONNECTED
        self._closed.set()
        logger.info(
            f"{self.__class__.__name__} closed"
            + (f" ({reason.code}: {reason.message})" if reason else "")
        )
        self.emit(TransportEvent.CLOSE, reason)
