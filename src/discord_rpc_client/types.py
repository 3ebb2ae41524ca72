"""Structural types for handshake, authentication and token payloads.

Only the fields the client itself reads are declared; everything else is
kept as extra data.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    """A user as sent in READY and AUTHENTICATE payloads."""

    model_config = ConfigDict(extra="allow")

    id: str
    username: str
    discriminator: str | None = None
    global_name: str | None = None
    avatar: str | None = None
    bot: bool = False
    flags: int | None = None
    premium_type: int | None = None


class Application(BaseModel):
    """The authenticated application."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    icon: str | None = None
    description: str | None = None
    rpc_origins: list[str] | None = None


class ServerConfig(BaseModel):
    """Endpoint configuration sent with READY."""

    model_config = ConfigDict(extra="allow")

    cdn_host: str | None = None
    api_endpoint: str | None = None
    environment: str | None = None


class ReadyData(BaseModel):
    """Payload of the READY handshake dispatch."""

    model_config = ConfigDict(extra="allow")

    v: int | None = None
    config: ServerConfig | None = None
    user: User | None = None


class AuthenticateData(BaseModel):
    """Payload of an AUTHENTICATE reply."""

    model_config = ConfigDict(extra="allow")

    application: Application
    user: User
    scopes: list[str] = []
    expires: str | None = None
    access_token: str | None = None


class TokenResponse(BaseModel):
    """Credential exchange reply. All four fields are required."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: str
    token_type: str
    expires_in: float
    scope: str | None = None


class AuthorizeOptions(BaseModel):
    """Options for the authorize step of login()."""

    scopes: list[str]
    redirect_uri: str | None = None
    prompt: str = "consent"
    use_rpc_token: bool = False

    def to_args(self, client_id: str, rpc_token: str | None = None) -> dict[str, Any]:
        args: dict[str, Any] = {
            "scopes": self.scopes,
            "client_id": client_id,
            "prompt": self.prompt,
        }
        if rpc_token:
            args["rpc_token"] = rpc_token
        if self.redirect_uri:
            args["redirect_uri"] = self.redirect_uri
        return args
