"""Tests for the non-blocking request engine and refresher."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import API_URL, TOKEN_URL, VALIDATE_URL, FakeProvider, bearer_of, token_response
from paypal_identity.client.async_requestor import AsyncRequestor
from paypal_identity.client.refresher import AsyncCredentialRefresher
from paypal_identity.exceptions import (
    DeferredTokenError,
    MissingCredentialError,
    NetworkError,
    RefreshHTTPError,
    UnauthorizedAfterRefreshError,
)
from paypal_identity.models import DeferredRefreshToken, StrategyConfig, TokenStore
from paypal_identity.transport import AsyncHttpTransport


def _requestor(config: StrategyConfig, provider: FakeProvider) -> AsyncRequestor:
    return AsyncRequestor(config, transport=provider.async_transport())


class TestAsyncRequestor:
    def test_plain_call(self, strategy_config: StrategyConfig, provider: FakeProvider) -> None:
        provider.queue(API_URL, httpx.Response(200, json={"id": "PAY-1"}))
        store = TokenStore(access_token="a", refresh_token="r")

        async def run() -> object:
            async with _requestor(strategy_config, provider) as requestor:
                return await requestor.get(API_URL, store, wants_json=True)

        body, response = asyncio.run(run())

        assert body == {"id": "PAY-1"}
        assert response.status_code == 200
        assert bearer_of(provider.requests[0]) == "a"

    def test_refreshes_once_on_401(self, strategy_config: StrategyConfig, provider: FakeProvider) -> None:
        provider.queue(TOKEN_URL, token_response("fresh"))
        provider.queue(API_URL, httpx.Response(401), httpx.Response(200, json={}))
        store = TokenStore(access_token="expired", refresh_token="r")

        result = asyncio.run(_requestor(strategy_config, provider).post(API_URL, store))

        assert result.status_code == 200
        assert [bearer_of(r) for r in provider.calls_to(API_URL)] == ["expired", "fresh"]
        assert len(provider.calls_to(TOKEN_URL)) == 1

    def test_second_403_is_terminal(self, strategy_config: StrategyConfig, provider: FakeProvider) -> None:
        provider.queue(TOKEN_URL, token_response("fresh"))
        provider.queue(API_URL, httpx.Response(403))
        store = TokenStore(access_token="expired", refresh_token="r")

        with pytest.raises(UnauthorizedAfterRefreshError) as exc_info:
            asyncio.run(_requestor(strategy_config, provider).get(API_URL, store))

        assert exc_info.value.status_code == 403
        assert len(provider.calls_to(API_URL)) == 2

    def test_empty_access_token_refreshes_first(
        self, strategy_config: StrategyConfig, provider: FakeProvider
    ) -> None:
        provider.queue(TOKEN_URL, token_response("fresh"))
        provider.queue(API_URL, httpx.Response(200))
        store = TokenStore(refresh_token="r")

        asyncio.run(_requestor(strategy_config, provider).get(API_URL, store))

        assert [r.url.path for r in provider.requests] == [
            httpx.URL(TOKEN_URL).path,
            httpx.URL(API_URL).path,
        ]

    def test_missing_credentials(self, strategy_config: StrategyConfig, provider: FakeProvider) -> None:
        with pytest.raises(MissingCredentialError):
            asyncio.run(_requestor(strategy_config, provider).get(API_URL, TokenStore()))
        assert provider.requests == []

    def test_network_error(self, strategy_config: StrategyConfig, provider: FakeProvider) -> None:
        provider.queue(API_URL, httpx.ReadTimeout("slow"))

        with pytest.raises(NetworkError):
            asyncio.run(_requestor(strategy_config, provider).get(API_URL, TokenStore(access_token="a")))
        assert len(provider.requests) == 1

    def test_token_details(self, strategy_config: StrategyConfig, provider: FakeProvider) -> None:
        provider.queue(VALIDATE_URL, httpx.Response(200, json={"scope": "openid"}))

        details = asyncio.run(_requestor(strategy_config, provider).get_token_details("tok"))

        assert details == {"scope": "openid"}
        assert provider.requests[0].content == b"access_token=tok"


class TestAsyncRefresher:
    def test_http_failure_keeps_token(self, strategy_config: StrategyConfig, provider: FakeProvider) -> None:
        provider.queue(TOKEN_URL, httpx.Response(400, json={"error": "invalid_grant"}))
        store = TokenStore(access_token="old", refresh_token="r")
        refresher = AsyncCredentialRefresher(strategy_config, provider.async_transport())

        with pytest.raises(RefreshHTTPError):
            asyncio.run(refresher.refresh(store))
        assert store.access_token == "old"

    def test_observer_runs_after_lock_released(
        self, strategy_config: StrategyConfig, provider: FakeProvider
    ) -> None:
        provider.queue(TOKEN_URL, token_response("fresh"))
        held: list[bool] = []

        def observer(store: TokenStore) -> None:
            held.append(store.async_refresh_lock.locked())
            raise RuntimeError("persist failed")

        store = TokenStore(refresh_token="r", on_token_updated=observer)
        refresher = AsyncCredentialRefresher(strategy_config, provider.async_transport())

        asyncio.run(refresher.refresh(store))

        assert held == [False]
        assert store.access_token == "fresh"

    def test_deferred_producer_failure(self, strategy_config: StrategyConfig, provider: FakeProvider) -> None:
        def producer(store: TokenStore) -> str:
            raise RuntimeError("vault sealed")

        store = TokenStore(access_token="old", refresh_token=DeferredRefreshToken(producer))
        refresher = AsyncCredentialRefresher(strategy_config, provider.async_transport())

        with pytest.raises(DeferredTokenError):
            asyncio.run(refresher.refresh(store))
        assert provider.requests == []

    def test_concurrent_401s_share_one_refresh(self, strategy_config: StrategyConfig) -> None:
        token_calls: list[httpx.Request] = []
        api_calls: list[httpx.Request] = []

        async def run() -> list[object]:
            both_rejected = asyncio.Event()
            rejected = 0

            async def handler(request: httpx.Request) -> httpx.Response:
                nonlocal rejected
                if request.url.path == httpx.URL(TOKEN_URL).path:
                    token_calls.append(request)
                    await asyncio.sleep(0)
                    return token_response("fresh")
                api_calls.append(request)
                if bearer_of(request) == "expired":
                    rejected += 1
                    if rejected == 2:
                        both_rejected.set()
                    await both_rejected.wait()
                    return httpx.Response(401)
                return httpx.Response(200, json={"ok": True})

            transport = AsyncHttpTransport(
                client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
            )
            store = TokenStore(access_token="expired", refresh_token="r")
            async with AsyncRequestor(strategy_config, transport=transport) as requestor:
                return await asyncio.gather(
                    requestor.get(API_URL, store, wants_json=True),
                    requestor.get(API_URL, store, wants_json=True),
                )

        results = asyncio.run(asyncio.wait_for(run(), timeout=5))

        assert [r.body for r in results] == [{"ok": True}, {"ok": True}]
        assert len(token_calls) == 1
        assert [bearer_of(r) for r in api_calls].count("fresh") == 2
