"""Outbound command envelopes.

Commands are requests from the client to the local endpoint. Each command
carries a unique nonce that the endpoint echoes in its reply.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class RpcCommand(str, Enum):
    """All command names understood by the endpoint."""

    DISPATCH = "DISPATCH"

    # Auth
    AUTHORIZE = "AUTHORIZE"
    AUTHENTICATE = "AUTHENTICATE"

    # Events
    SUBSCRIBE = "SUBSCRIBE"
    UNSUBSCRIBE = "UNSUBSCRIBE"

    # Guilds and channels
    GET_GUILD = "GET_GUILD"
    GET_GUILDS = "GET_GUILDS"
    GET_CHANNEL = "GET_CHANNEL"
    GET_CHANNELS = "GET_CHANNELS"
    SELECT_VOICE_CHANNEL = "SELECT_VOICE_CHANNEL"
    GET_SELECTED_VOICE_CHANNEL = "GET_SELECTED_VOICE_CHANNEL"
    SELECT_TEXT_CHANNEL = "SELECT_TEXT_CHANNEL"

    # Voice
    GET_VOICE_SETTINGS = "GET_VOICE_SETTINGS"
    SET_VOICE_SETTINGS = "SET_VOICE_SETTINGS"
    SET_USER_VOICE_SETTINGS = "SET_USER_VOICE_SETTINGS"
    SET_CERTIFIED_DEVICES = "SET_CERTIFIED_DEVICES"

    # Activity
    SET_ACTIVITY = "SET_ACTIVITY"
    SEND_ACTIVITY_JOIN_INVITE = "SEND_ACTIVITY_JOIN_INVITE"
    CLOSE_ACTIVITY_REQUEST = "CLOSE_ACTIVITY_REQUEST"


class Command(BaseModel):
    """A request envelope.

    Example:
        {
            "cmd": "SUBSCRIBE",
            "args": {"channel_id": "123"},
            "evt": "MESSAGE_CREATE",
            "nonce": "4b5b2f0e-..."
        }

    The reply carries the same ``nonce``.
    """

    cmd: str
    args: dict[str, Any] | None = None
    evt: str | None = None
    nonce: str = Field(default_factory=lambda: str(uuid.uuid4()))

    def to_wire(self) -> dict[str, Any]:
        """Build the JSON-ready payload; absent ``evt``/``args`` are omitted."""
        absent = {name for name in ("args", "evt") if getattr(self, name) is None}
        return self.model_dump(exclude=absent)

    @classmethod
    def create(
        cls,
        cmd: str | RpcCommand,
        args: dict[str, Any] | None = None,
        evt: str | Enum | None = None,
        nonce: str | None = None,
    ) -> Command:
        """Factory method for creating commands."""
        return cls(
            cmd=cmd.value if isinstance(cmd, RpcCommand) else cmd,
            args=args,
            evt=evt.value if isinstance(evt, Enum) else evt,
            nonce=nonce or str(uuid.uuid4()),
        )
