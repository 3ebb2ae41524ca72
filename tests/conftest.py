"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from discord_rpc_client import Client, ClientConfig, MockTransport

CLIENT_ID = "1234567890"
API_BASE = "https://discord.test/api"
READY_USER = {"id": "42", "username": "tester", "global_name": "Tester"}

HttpHandler = Callable[[httpx.Request], httpx.Response]


def _token_payload(**overrides: Any) -> dict[str, Any]:
    payload = {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "token_type": "Bearer",
        "expires_in": 604800,
        "scope": "rpc identify",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def token_payload() -> Callable[..., dict[str, Any]]:
    """Factory for credential exchange replies."""
    return _token_payload


@pytest.fixture
def make_http() -> Callable[[HttpHandler], httpx.AsyncClient]:
    """Factory for HTTP clients whose requests are answered by a handler."""

    def factory(handler: HttpHandler) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=API_BASE, transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def transport() -> MockTransport:
    """Mock transport that answers connect with a READY handshake."""
    return MockTransport(auto_ready=READY_USER)


@pytest.fixture
def http_requests() -> list[httpx.Request]:
    """Requests seen by the default HTTP handler."""
    return []


@pytest.fixture
def client(
    transport: MockTransport,
    http_requests: list[httpx.Request],
    make_http: Callable[[HttpHandler], httpx.AsyncClient],
) -> Client:
    """Client over the mock transport; every HTTP call returns a valid token."""

    def handler(request: httpx.Request) -> httpx.Response:
        http_requests.append(request)
        return httpx.Response(200, json=_token_payload())

    config = ClientConfig(client_id=CLIENT_ID, client_secret="s3cret", transport=transport)
    return Client(config, http=make_http(handler))
