"""Client for the desktop application's local RPC endpoint.

Connects over IPC (default) or a loopback WebSocket, correlates replies to
requests by nonce, dispatches unsolicited events to subscribers, and keeps
OAuth2 tokens fresh for authenticated sessions.
"""

from .client import Client, ClientSignal, ConnectionState, Subscription
from .config import ClientConfig, TransportConfig
from .errors import (
    ConnectionEndedError,
    ConnectionTimeoutError,
    CustomRPCErrorCode,
    MalformedTokenResponseError,
    NoEndpointFoundError,
    RemoteError,
    RPCError,
    RPCErrorCode,
    UnknownRPCError,
)
from .protocol import Command, Message, RpcCommand, RpcEvent
from .transport import (
    CloseReason,
    IPCTransport,
    MockTransport,
    Transport,
    WebSocketTransport,
    create_transport,
)
from .types import Application, AuthorizeOptions, User

__all__ = [
    # Client
    "Client",
    "ClientSignal",
    "ConnectionState",
    "Subscription",
    # Config
    "ClientConfig",
    "TransportConfig",
    # Protocol
    "Command",
    "Message",
    "RpcCommand",
    "RpcEvent",
    # Transports
    "Transport",
    "CloseReason",
    "IPCTransport",
    "WebSocketTransport",
    "MockTransport",
    "create_transport",
    # Types
    "Application",
    "AuthorizeOptions",
    "User",
    # Errors
    "RPCError",
    "RPCErrorCode",
    "CustomRPCErrorCode",
    "ConnectionEndedError",
    "ConnectionTimeoutError",
    "NoEndpointFoundError",
    "RemoteError",
    "MalformedTokenResponseError",
    "UnknownRPCError",
]
