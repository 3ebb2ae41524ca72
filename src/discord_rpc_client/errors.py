"""Error taxonomy for the RPC client.

Every failure surfaced to callers of connect/request/login is an RPCError
subclass carrying a numeric code and a message. Remote codes come from the
endpoint's ERROR event; client-side failures use CustomRPCErrorCode.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class RPCErrorCode(IntEnum):
    """Error codes returned by the local RPC endpoint."""

    UNKNOWN_ERROR = 1000
    SERVICE_UNAVAILABLE = 1001
    TRANSACTION_TIMEOUT = 1002
    INVALID_PAYLOAD = 4000
    INVALID_COMMAND = 4002
    INVALID_GUILD = 4003
    INVALID_EVENT = 4004
    INVALID_CHANNEL = 4005
    INVALID_PERMISSIONS = 4006
    INVALID_CLIENT_ID = 4007
    INVALID_ORIGIN = 4008
    INVALID_TOKEN = 4009
    INVALID_USER = 4010
    OAUTH2_ERROR = 5000
    SELECT_CHANNEL_TIMED_OUT = 5001
    GET_GUILD_TIMED_OUT = 5002
    SELECT_VOICE_FORCE_REQUIRED = 5003
    CAPTURE_SHORTCUT_ALREADY_LISTENING = 5004


class CustomRPCErrorCode(IntEnum):
    """Client-side error codes (never sent by the endpoint)."""

    CONNECTION_ENDED = 0
    CONNECTION_TIMEOUT = 1
    NO_ENDPOINT_FOUND = 2
    MALFORMED_TOKEN_RESPONSE = 3


class RPCError(Exception):
    """Base class for all RPC client errors."""

    default_code: int = RPCErrorCode.UNKNOWN_ERROR
    default_message: str = "Unknown error"

    def __init__(self, message: str | None = None, code: int | None = None):
        self.code = int(code if code is not None else self.default_code)
        self.message = message or self.default_message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code}, message={self.message!r})"


class ConnectionTimeoutError(RPCError):
    """The handshake did not arrive within the connect timeout."""

    default_code = CustomRPCErrorCode.CONNECTION_TIMEOUT
    default_message = "Connection timed out"


class ConnectionEndedError(RPCError):
    """The connection closed while a request or handshake was outstanding."""

    default_code = CustomRPCErrorCode.CONNECTION_ENDED
    default_message = "Connection ended"


class NoEndpointFoundError(RPCError):
    """Every local endpoint candidate failed to open.

    ``attempts`` holds ``(candidate, error)`` pairs in the order tried.
    """

    default_code = CustomRPCErrorCode.NO_ENDPOINT_FOUND
    default_message = "No local endpoint found"

    def __init__(
        self,
        message: str | None = None,
        code: int | None = None,
        attempts: list[tuple[str, BaseException]] | None = None,
    ):
        super().__init__(message, code)
        self.attempts = attempts or []


class RemoteError(RPCError):
    """The endpoint answered a request with an ERROR event."""

    @classmethod
    def from_data(cls, data: dict[str, Any] | None) -> RemoteError:
        """Build the error for an ERROR reply; replies without a code are unknown."""
        data = data or {}
        if data.get("code") is None:
            return UnknownRPCError(data.get("message") or None)
        return cls(message=data.get("message") or cls.default_message, code=data["code"])


class UnknownRPCError(RemoteError):
    """An ERROR reply that carried no error code."""


class MalformedTokenResponseError(RPCError):
    """A credential exchange reply lacked a required field."""

    default_code = CustomRPCErrorCode.MALFORMED_TOKEN_RESPONSE
    default_message = "Invalid access token response"
