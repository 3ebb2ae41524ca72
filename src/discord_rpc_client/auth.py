"""OAuth2 token lifecycle.

Drives the authorize → token exchange → authenticate sequence over the RPC
connection and the REST credential endpoints, and keeps the access token
fresh with a one-shot refresh task that is re-armed on every exchange.

Flow:
    [POST /oauth2/token/rpc]          (optional, use_rpc_token=True)
    AUTHORIZE {scopes, client_id, ...} → {code}
    POST /oauth2/token (authorization_code) → tokens, refresh scheduled
    AUTHENTICATE {access_token}       → application, user
    ... expires_in seconds later ...
    POST /oauth2/token (refresh_token) → tokens, refresh re-scheduled
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from pydantic import ValidationError

from .errors import ConnectionEndedError, MalformedTokenResponseError
from .protocol.commands import RpcCommand
from .protocol.events import Message
from .types import AuthenticateData, AuthorizeOptions, TokenResponse

logger = logging.getLogger(__name__)

RequestFn = Callable[[RpcCommand, dict[str, Any] | None], Awaitable[Message]]

TOKEN_PATH = "/oauth2/token"
RPC_TOKEN_PATH = "/oauth2/token/rpc"

_REQUIRED_TOKEN_FIELDS = ("access_token", "refresh_token", "token_type", "expires_in")


class TokenManager:
    """Owns the access/refresh token pair and the refresh task of one client."""

    def __init__(
        self,
        client_id: str,
        client_secret: str | None,
        http: httpx.AsyncClient,
        request: RequestFn,
        debug: Callable[[str], None] | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self._http = http
        self._request = request
        self._debug = debug or (lambda _msg: None)

        self.access_token: str | None = None
        self.refresh_token: str | None = None
        self.token_type = "Bearer"
        self._refresh_task: asyncio.Task[None] | None = None
        # Bumped by reset(); exchanges started under an older value are discarded
        self._generation = 0

    @property
    def refresh_scheduled(self) -> bool:
        """True while a refresh task is armed."""
        return self._refresh_task is not None and not self._refresh_task.done()

    def authorization_header(self) -> dict[str, str]:
        if not self.access_token:
            return {}
        return {"Authorization": f"{self.token_type} {self.access_token}"}

    async def authorize(self, options: AuthorizeOptions) -> TokenResponse:
        """Request user authorization and exchange the code for tokens.

        Raises:
            RemoteError: If the endpoint rejects the authorization
            MalformedTokenResponseError: If the exchange reply is incomplete
            httpx.HTTPStatusError: If a credential endpoint returns an error
            ConnectionEndedError: If reset() ran before the code exchange finished
        """
        rpc_token = None
        if options.use_rpc_token:
            data = await self._post_form(
                RPC_TOKEN_PATH,
                {"client_id": self.client_id, "client_secret": self.client_secret or ""},
            )
            rpc_token = data.get("rpc_token")

        reply = await self._request(
            RpcCommand.AUTHORIZE, options.to_args(self.client_id, rpc_token)
        )
        code = (reply.data or {}).get("code")

        data = await self._exchange(
            TOKEN_PATH,
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret or "",
                "redirect_uri": options.redirect_uri or "",
                "grant_type": "authorization_code",
                "code": code or "",
            },
        )
        return self.handle_token_response(data)

    async def authenticate(self) -> AuthenticateData:
        """Resolve the authenticated user and application for the access token."""
        reply = await self._request(
            RpcCommand.AUTHENTICATE, {"access_token": self.access_token or ""}
        )
        return AuthenticateData.model_validate(reply.data)

    async def refresh(self) -> TokenResponse:
        """Exchange the stored refresh token for a new token pair."""
        self._debug("CLIENT | Refreshing access token!")
        data = await self._exchange(
            TOKEN_PATH,
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret or "",
                "grant_type": "refresh_token",
                "refresh_token": self.refresh_token or "",
            },
        )
        return self.handle_token_response(data)

    def handle_token_response(self, data: Any) -> TokenResponse:
        """Validate and store a token reply, then re-arm the refresh task.

        Raises:
            MalformedTokenResponseError: If any required field is missing
        """
        missing = (
            [name for name in _REQUIRED_TOKEN_FIELDS if name not in data]
            if isinstance(data, dict)
            else list(_REQUIRED_TOKEN_FIELDS)
        )
        if missing:
            raise MalformedTokenResponseError(
                f"Invalid access token response: missing {', '.join(missing)}"
            )
        try:
            token = TokenResponse.model_validate(data)
        except ValidationError as e:
            raise MalformedTokenResponseError(f"Invalid access token response: {e}") from e

        self.access_token = token.access_token
        self.refresh_token = token.refresh_token
        self.token_type = token.token_type
        self._schedule_refresh(token.expires_in)
        return token

    def reset(self) -> None:
        """Cancel the refresh task and forget all tokens."""
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None
        self._generation += 1
        self.access_token = None
        self.refresh_token = None
        self.token_type = "Bearer"

    def _schedule_refresh(self, delay: float) -> None:
        current = asyncio.current_task()
        if self._refresh_task is not None and self._refresh_task is not current:
            self._refresh_task.cancel()
        self._refresh_task = asyncio.create_task(self._refresh_after(delay))
        logger.debug(f"Access token refresh scheduled in {delay}s")

    async def _refresh_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.refresh()
        except (httpx.HTTPError, MalformedTokenResponseError) as e:
            logger.exception("Access token refresh failed")
            self._debug(f"CLIENT | Access token refresh failed: {e}")

    async def _exchange(self, path: str, form: dict[str, str]) -> Any:
        """POST a credential exchange and drop the reply if reset() ran meanwhile.

        Raises:
            ConnectionEndedError: If the manager was reset during the exchange
        """
        generation = self._generation
        data = await self._post_form(path, form)
        if generation != self._generation:
            logger.debug("Discarding token exchange that finished after teardown")
            raise ConnectionEndedError("Client destroyed during token exchange")
        return data

    async def _post_form(self, path: str, form: dict[str, str]) -> Any:
        response = await self._http.post(path, data=form)
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            raise MalformedTokenResponseError(f"Invalid access token response: {e}") from e
