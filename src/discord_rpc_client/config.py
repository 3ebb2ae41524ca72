"""Client and transport configuration."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .transport.base import Transport

# Formats a candidate IPC path for pipe index ``i``
PathFormatter = Callable[[int], str]

DEFAULT_API_BASE_URL = "https://discord.com/api"
DEFAULT_CDN_HOST = "https://cdn.discordapp.com"
DEFAULT_ORIGIN = "https://localhost"


@dataclass
class TransportConfig:
    """Settings shared by the built-in transports.

    Built by the client from ClientConfig; custom transports receive it too.
    """

    client_id: str
    pipe_id: int | None = None

    # WebSocket settings
    host: str = "127.0.0.1"
    base_port: int = 6463
    port_count: int = 10
    origin: str = DEFAULT_ORIGIN
    open_timeout: float = 10.0

    # IPC settings
    path_formatters: list[PathFormatter] | None = None

    def ports(self) -> list[int]:
        """Candidate WebSocket ports in the order they are tried."""
        return [self.base_port + i for i in range(self.port_count)]

    def websocket_url(self, port: int) -> str:
        return f"ws://{self.host}:{port}/?v=1&client_id={self.client_id}"


@dataclass
class ClientConfig:
    """Configuration for Client.

    ``transport`` is one of:
    - "ipc": pipe / Unix-socket transport (default)
    - "websocket": loopback WebSocket transport
    - a Transport subclass, instantiated with a TransportConfig
    - a ready Transport instance
    """

    client_id: str
    client_secret: str | None = None
    pipe_id: int | None = None

    transport: str | type[Transport] | Transport = "ipc"
    path_formatters: list[PathFormatter] | None = None

    api_base_url: str = DEFAULT_API_BASE_URL
    origin: str = DEFAULT_ORIGIN
    connect_timeout: float = 10.0

    def transport_config(self) -> TransportConfig:
        return TransportConfig(
            client_id=self.client_id,
            pipe_id=self.pipe_id,
            origin=self.origin,
            path_formatters=self.path_formatters,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> ClientConfig:
        """Build a config from DISCORD_* environment variables.

        Keyword overrides win over the environment.

        Raises:
            ValueError: If no client id is available
        """
        values: dict[str, Any] = {}
        if client_id := os.getenv("DISCORD_CLIENT_ID"):
            values["client_id"] = client_id
        if client_secret := os.getenv("DISCORD_CLIENT_SECRET"):
            values["client_secret"] = client_secret
        if transport := os.getenv("DISCORD_RPC_TRANSPORT"):
            values["transport"] = transport.lower()
        if pipe_id := os.getenv("DISCORD_IPC_PIPE_ID"):
            values["pipe_id"] = int(pipe_id)

        values.update(overrides)
        if not values.get("client_id"):
            raise ValueError("client_id is required (set DISCORD_CLIENT_ID)")
        return cls(**values)
