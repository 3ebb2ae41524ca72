"""RPC client: connection state machine and request correlation.

One Client owns one transport, one pending-request table and one token
manager. Nothing is shared between clients, so several can run in the same
process.

Usage:
    client = Client(ClientConfig(client_id="1234567890"))
    client.on(ClientSignal.READY, lambda: print("ready"))

    await client.login()
    await client.set_activity({"details": "Editing", "state": "main.py"})
    ...
    await client.destroy()

With authorization:
    await client.login(AuthorizeOptions(scopes=["rpc", "identify"]))
    print(client.user, client.application)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from pydantic import ValidationError

from .auth import TokenManager
from .config import DEFAULT_CDN_HOST, ClientConfig
from .emitter import EventEmitter, Handler
from .errors import ConnectionEndedError, ConnectionTimeoutError
from .pending import PendingRequests
from .protocol.commands import Command, RpcCommand
from .protocol.events import Message, RpcEvent
from .transport import CloseReason, Transport, TransportEvent, create_transport
from .types import Application, AuthorizeOptions, ReadyData, User

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Client connection state machine."""

    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_HANDSHAKE = "awaiting_handshake"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class ClientSignal(str, Enum):
    """Lifecycle signals emitted to the owning application."""

    CONNECTED = "connected"  # Handshake complete
    READY = "ready"  # Fully usable (authenticated if scopes were requested)
    DISCONNECTED = "disconnected"  # Transport closed after being connected
    DEBUG = "debug"  # Diagnostic text


@dataclass
class Subscription:
    """Handle returned by Client.subscribe()."""

    _client: Client
    event: str
    args: dict[str, Any] | None = None

    async def unsubscribe(self) -> Message:
        """Stop receiving the event."""
        return await self._client.request(RpcCommand.UNSUBSCRIBE, self.args, self.event)


def _connection_ended(reason: CloseReason | None) -> ConnectionEndedError:
    if reason is not None:
        return ConnectionEndedError(reason.message or None, code=reason.code)
    return ConnectionEndedError()


class Client(EventEmitter):
    """Client for the local RPC endpoint."""

    def __init__(
        self,
        config: ClientConfig,
        http: httpx.AsyncClient | None = None,
    ):
        super().__init__()
        self.config = config
        self.transport: Transport = create_transport(config.transport, config.transport_config())

        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(base_url=config.api_base_url, timeout=30.0)
        self.tokens = TokenManager(
            client_id=config.client_id,
            client_secret=config.client_secret,
            http=self._http,
            request=self.request,
            debug=self._debug,
        )

        self._state = ConnectionState.IDLE
        self._pending = PendingRequests()
        self._connect_task: asyncio.Task[None] | None = None
        self._handshake: asyncio.Future[None] | None = None

        self.user: User | None = None
        self.application: Application | None = None
        self.cdn_host = DEFAULT_CDN_HOST
        self.api_endpoint: str | None = None

        self.transport.on(TransportEvent.MESSAGE, self._on_message)

    # =========================================================================
    # State
    # =========================================================================

    @property
    def client_id(self) -> str:
        return self.config.client_id

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self.transport.is_connected

    @property
    def pending_count(self) -> int:
        """Number of requests waiting for a reply."""
        return len(self._pending)

    # =========================================================================
    # Request correlation
    # =========================================================================

    async def request(
        self,
        cmd: RpcCommand | str,
        args: dict[str, Any] | None = None,
        evt: RpcEvent | str | None = None,
    ) -> Message:
        """Send a command and wait for the reply carrying its nonce.

        Returns:
            The full reply envelope

        Raises:
            RemoteError: If the endpoint replies with an ERROR event
            ConnectionEndedError: If the handshake has not completed, or the
                connection closes before the reply
        """
        if self._state != ConnectionState.CONNECTED or not self.transport.is_connected:
            raise ConnectionEndedError("Not connected")

        command = Command.create(cmd, args, evt)
        future = self._pending.register(command.nonce)
        try:
            self.transport.send(command.to_wire())
            return await future
        finally:
            # Only reached with a live entry if the caller was cancelled
            self._pending.discard(command.nonce)

    def _on_message(self, payload: Any) -> None:
        try:
            message = Message.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed message: {e}")
            return

        if message.is_ready():
            self._on_ready(message)
            return
        if self._pending.settle(message):
            return
        if message.evt:
            self.emit(message.evt, message.data)

    # =========================================================================
    # Connection state machine
    # =========================================================================

    def connect(self) -> asyncio.Future[None]:
        """Connect to the local endpoint and wait for the READY handshake.

        Concurrent calls share one in-flight attempt: the same future is
        returned to every caller.

        Raises (when awaited):
            ConnectionTimeoutError: If READY does not arrive in time
            NoEndpointFoundError: If no local endpoint is reachable
            ConnectionEndedError: If the transport closes during the handshake
        """
        if self._connect_task is not None and not self._connect_task.done():
            return self._connect_task

        if self.is_connected:
            done: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            done.set_result(None)
            return done

        self._connect_task = asyncio.ensure_future(self._connect())
        return self._connect_task

    async def _connect(self) -> None:
        self._state = ConnectionState.CONNECTING
        self._handshake = asyncio.get_running_loop().create_future()
        unlisten = self.transport.once(TransportEvent.CLOSE, self._on_handshake_close)

        try:
            async with asyncio.timeout(self.config.connect_timeout):
                await self.transport.connect()
                if self._state == ConnectionState.CONNECTING:
                    self._state = ConnectionState.AWAITING_HANDSHAKE
                await self._handshake
        except TimeoutError as e:
            unlisten()
            self._state = ConnectionState.DISCONNECTED
            self._debug("CLIENT | Connection timed out")
            await self.transport.close()
            raise ConnectionTimeoutError() from e
        except BaseException:
            self._state = ConnectionState.DISCONNECTED
            raise
        finally:
            unlisten()
            self._handshake = None

    def _on_handshake_close(self, reason: CloseReason | None) -> None:
        if self._handshake is not None and not self._handshake.done():
            self._handshake.set_exception(_connection_ended(reason))

    def _on_ready(self, message: Message) -> None:
        try:
            ready = ReadyData.model_validate(message.data or {})
        except ValidationError as e:
            logger.warning(f"Malformed READY payload: {e}")
            ready = ReadyData()

        if ready.user is not None:
            self.user = ready.user
        if ready.config is not None:
            if ready.config.cdn_host:
                self.cdn_host = f"https://{ready.config.cdn_host}"
            self.api_endpoint = ready.config.api_endpoint

        if self._state == ConnectionState.CONNECTED:
            return

        self._state = ConnectionState.CONNECTED
        self.transport.once(TransportEvent.CLOSE, self._on_close)
        logger.info(f"Connected to local RPC endpoint as client {self.client_id}")
        self.emit(ClientSignal.CONNECTED)

        if self._handshake is not None and not self._handshake.done():
            self._handshake.set_result(None)

    def _on_close(self, reason: CloseReason | None) -> None:
        rejected = self._pending.reject_all(lambda: _connection_ended(reason))
        self._state = ConnectionState.DISCONNECTED
        self._debug(f"CLIENT | Disconnected, {rejected} pending request(s) rejected")
        self.emit(ClientSignal.DISCONNECTED)

    async def login(self, options: AuthorizeOptions | None = None) -> None:
        """Connect, then authorize and authenticate if scopes are requested.

        Emits ``ready`` once the client is usable.
        """
        await self.connect()

        if options is None or not options.scopes:
            self.emit(ClientSignal.READY)
            return

        await self.tokens.authorize(options)
        auth = await self.tokens.authenticate()
        self.application = auth.application
        self.user = auth.user
        self.emit(ClientSignal.READY)

    async def destroy(self) -> None:
        """Cancel the token refresh, drop tokens and close the transport."""
        self.tokens.reset()
        await self.transport.close()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> Client:
        await self.login()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.destroy()

    # =========================================================================
    # Commands
    # =========================================================================

    async def subscribe(
        self,
        event: RpcEvent | str,
        args: dict[str, Any] | None = None,
    ) -> Subscription:
        """Subscribe to an event; dispatches arrive via ``client.on(event, ...)``."""
        name = event.value if isinstance(event, RpcEvent) else event
        if name in (RpcEvent.READY.value, RpcEvent.ERROR.value):
            raise ValueError(f"Cannot subscribe to {name}")
        await self.request(RpcCommand.SUBSCRIBE, args, name)
        return Subscription(_client=self, event=name, args=args)

    async def set_activity(
        self,
        activity: dict[str, Any] | None,
        pid: int | None = None,
    ) -> Message:
        """Set (or with None, clear) the rich presence activity."""
        return await self.request(
            RpcCommand.SET_ACTIVITY,
            {"pid": pid if pid is not None else os.getpid(), "activity": activity},
        )

    async def clear_activity(self, pid: int | None = None) -> Message:
        return await self.set_activity(None, pid)

    async def fetch(
        self,
        method: str,
        path: str,
        *,
        data: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Call the REST API with the current access token."""
        response = await self._http.request(
            method,
            path,
            data=data,
            params=params,
            headers={**(headers or {}), **self.tokens.authorization_header()},
        )
        response.raise_for_status()
        return response

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, event: ClientSignal | RpcEvent | str, handler: Handler) -> Callable[[], None]:
        """Register a handler for a lifecycle signal or RPC event name."""
        return super().on(event, handler)

    def _debug(self, text: str) -> None:
        logger.debug(text)
        self.emit(ClientSignal.DEBUG, text)
