"""Shared test fixtures for paypal_identity.

Provides a sample environment configuration and a scripted fake of the
identity service built on :class:`httpx.MockTransport`, so that no test
touches the network.
"""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from paypal_identity.models import StrategyConfig
from paypal_identity.transport import AsyncHttpTransport, HttpTransport

TOKEN_URL = "https://api.sandbox.paypal.com/v1/identity/openidconnect/tokenservice"
PROFILE_URL = "https://api.sandbox.paypal.com/v1/identity/openidconnect/userinfo?schema=openid"
VALIDATE_URL = "https://www.sandbox.paypal.com/webapps/auth/protocol/openidconnect/v1/validatetoken"
API_URL = "https://api.sandbox.paypal.com/v1/payments/payment"


class FakeProvider:
    """Scripted identity service and API.

    Responses are queued per URL path; each request pops the next one (the
    last queued response repeats).  Every request is recorded in
    :attr:`requests` in arrival order.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: dict[str, list[Any]] = {}

    def queue(self, url: str, *responses: Any) -> None:
        """Queue responses for *url*: ``httpx.Response`` objects, exceptions, or callables."""
        path = httpx.URL(url).path
        self._responses.setdefault(path, []).extend(responses)

    def calls_to(self, url: str) -> list[httpx.Request]:
        path = httpx.URL(url).path
        return [r for r in self.requests if r.url.path == path]

    def _next(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queued = self._responses.get(request.url.path)
        if not queued:
            return httpx.Response(404, json={"error": "not_found"})
        response = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response

    def handler(self, request: httpx.Request) -> httpx.Response:
        return self._next(request)

    async def async_handler(self, request: httpx.Request) -> httpx.Response:
        return self._next(request)

    def transport(self) -> HttpTransport:
        return HttpTransport(client=httpx.Client(transport=httpx.MockTransport(self.handler)))

    def async_transport(self) -> AsyncHttpTransport:
        return AsyncHttpTransport(
            client=httpx.AsyncClient(transport=httpx.MockTransport(self.async_handler))
        )


def token_response(access_token: str = "fresh-token", **extra: Any) -> httpx.Response:
    """A successful token-endpoint response."""
    return httpx.Response(200, json={"access_token": access_token, "token_type": "Bearer", **extra})


def bearer_of(request: httpx.Request) -> str:
    """The bearer token a request was sent with."""
    return request.headers.get("Authorization", "").removeprefix("Bearer ")


@pytest.fixture
def strategy_config() -> StrategyConfig:
    """Sandbox configuration pointing at the fake provider's URLs."""
    return StrategyConfig(
        client_id="client-123",
        client_secret="shhh-its-a-secret",
        callback_url="https://www.example.net/auth/paypal/callback",
        authorization_url="https://www.sandbox.paypal.com/webapps/auth/protocol/openidconnect/v1/authorize",
        token_url=TOKEN_URL,
        profile_url=PROFILE_URL,
        validate_token_url=VALIDATE_URL,
        environment_name="sandbox",
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()

