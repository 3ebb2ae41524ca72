"""Transport abstraction layer.

Provides interchangeable channels to the local endpoint:
- IPC - framed messages over a Unix socket / Windows named pipe (default)
- WebSocket - loopback WebSocket with port discovery
- Mock - in-memory, for tests

The client only depends on the Transport contract, so a caller-supplied
implementation can replace either built-in variant.
"""

from __future__ import annotations

from ..config import TransportConfig
from .base import CloseReason, Transport, TransportEvent, TransportState
from .ipc import IPCTransport, OpCode, default_path_formatters
from .mock import MockTransport
from .websocket import WebSocketTransport

TRANSPORTS: dict[str, type[Transport]] = {
    "ipc": IPCTransport,
    "websocket": WebSocketTransport,
}


def create_transport(
    kind: str | type[Transport] | Transport,
    config: TransportConfig,
) -> Transport:
    """Resolve a transport selection into an instance.

    Args:
        kind: "ipc", "websocket", a Transport subclass, or an instance
        config: Settings passed to built-in or subclass transports

    Raises:
        ValueError: If ``kind`` names an unknown transport
    """
    if isinstance(kind, Transport):
        return kind
    if isinstance(kind, type) and issubclass(kind, Transport):
        return kind(config)
    try:
        return TRANSPORTS[kind](config)
    except KeyError:
        raise ValueError(
            f"Unknown transport: {kind!r} (expected one of {', '.join(TRANSPORTS)})"
        ) from None


__all__ = [
    "CloseReason",
    "Transport",
    "TransportEvent",
    "TransportState",
    "IPCTransport",
    "OpCode",
    "default_path_formatters",
    "WebSocketTransport",
    "MockTransport",
    "create_transport",
]
