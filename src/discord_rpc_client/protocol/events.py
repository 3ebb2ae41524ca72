"""Inbound envelopes and event names.

Messages from the endpoint are either:
- Correlated: the reply to a command (``nonce`` matches a pending request)
- Unsolicited: a DISPATCH for a subscribed event, or the READY handshake
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class RpcEvent(str, Enum):
    """Event names carried in the ``evt`` field."""

    # Handshake / errors
    READY = "READY"
    ERROR = "ERROR"

    # Guilds and channels
    GUILD_STATUS = "GUILD_STATUS"
    GUILD_CREATE = "GUILD_CREATE"
    CHANNEL_CREATE = "CHANNEL_CREATE"
    VOICE_CHANNEL_SELECT = "VOICE_CHANNEL_SELECT"

    # Voice
    VOICE_STATE_CREATE = "VOICE_STATE_CREATE"
    VOICE_STATE_UPDATE = "VOICE_STATE_UPDATE"
    VOICE_STATE_DELETE = "VOICE_STATE_DELETE"
    VOICE_SETTINGS_UPDATE = "VOICE_SETTINGS_UPDATE"
    VOICE_CONNECTION_STATUS = "VOICE_CONNECTION_STATUS"
    SPEAKING_START = "SPEAKING_START"
    SPEAKING_STOP = "SPEAKING_STOP"

    # Messages
    MESSAGE_CREATE = "MESSAGE_CREATE"
    MESSAGE_UPDATE = "MESSAGE_UPDATE"
    MESSAGE_DELETE = "MESSAGE_DELETE"
    NOTIFICATION_CREATE = "NOTIFICATION_CREATE"

    # Activity
    ACTIVITY_JOIN = "ACTIVITY_JOIN"
    ACTIVITY_SPECTATE = "ACTIVITY_SPECTATE"
    ACTIVITY_JOIN_REQUEST = "ACTIVITY_JOIN_REQUEST"


class Message(BaseModel):
    """An envelope received from the endpoint.

    Example (reply):
        {
            "cmd": "SET_ACTIVITY",
            "evt": null,
            "nonce": "4b5b2f0e-...",
            "data": {"name": "My Game"}
        }

    Example (handshake):
        {
            "cmd": "DISPATCH",
            "evt": "READY",
            "nonce": null,
            "data": {"v": 1, "config": {...}, "user": {...}}
        }
    """

    model_config = ConfigDict(extra="allow")

    cmd: str
    evt: str | None = None
    nonce: str | None = None
    data: Any = None

    def is_ready(self) -> bool:
        """Check if this is the READY handshake dispatch."""
        return self.cmd == "DISPATCH" and self.evt == RpcEvent.READY.value

    def is_error(self) -> bool:
        """Check if this is an error reply."""
        return self.evt == RpcEvent.ERROR.value
