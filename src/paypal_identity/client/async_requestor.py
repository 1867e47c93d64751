"""Asynchronous request engine -- mirrors :class:`~paypal_identity.client.requestor.Requestor`.

This module provides :class:`AsyncRequestor`, the non-blocking counterpart
to :class:`~paypal_identity.client.requestor.Requestor`.  It wraps
:class:`~paypal_identity.transport.AsyncHttpTransport` and follows the same
rules: check credentials, refresh an empty access token up front, attach
the bearer token, refresh and replay once on 401/403.

Suspension happens only at network I/O (the refresh, the primary call, and
the retry).  Concurrent tasks that hit 401 on the same token store share one
refresh through the store's :class:`asyncio.Lock`.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from paypal_identity.client.refresher import AsyncCredentialRefresher
from paypal_identity.client.requestor import (
    REFRESH_STATUS_CODES,
    build_request_kwargs,
    parse_token_details,
    read_result,
    select_token_store,
    unauthorized_after_refresh,
)
from paypal_identity.exceptions import NetworkError
from paypal_identity.models import RequestContext, RequestResult, StrategyConfig, TokenStore
from paypal_identity.transport import AsyncHttpTransport

logger = logging.getLogger(__name__)


class AsyncRequestor:
    """Non-blocking engine for calls made with a user's tokens.

    Args:
        config: Environment configuration.
        transport: Optional pre-built async transport.
        tokens: Optional default token store.

    Example::

        async with AsyncRequestor(config) as requestor:
            result = await requestor.get(url, token_store, wants_json=True)
    """

    def __init__(
        self,
        config: StrategyConfig,
        transport: Optional[AsyncHttpTransport] = None,
        tokens: Optional[TokenStore] = None,
    ) -> None:
        self._config = config
        self._transport = transport or AsyncHttpTransport(config.transport_options)
        self._refresher = AsyncCredentialRefresher(config, self._transport)
        self._tokens = tokens

    # ------------------------------------------------------------------ #
    # Async context manager
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> AsyncRequestor:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._transport.aclose()

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    async def execute(
        self, token_store: Optional[TokenStore], context: RequestContext
    ) -> RequestResult:
        """Run one call; see :meth:`Requestor.execute <paypal_identity.client.requestor.Requestor.execute>`."""
        tokens = select_token_store(token_store, self._tokens)
        if not tokens.access_token:
            logger.debug("No access_token for request, refreshing immediately.")
            await self._refresher.refresh(tokens, stale_token=tokens.access_token)
        return await self._send(tokens, context)

    async def request(
        self,
        method: str,
        url: str,
        token_store: Optional[TokenStore] = None,
        **kwargs: Any,
    ) -> RequestResult:
        context = RequestContext(method=method.upper(), url=url, **kwargs)
        return await self.execute(token_store, context)

    async def get(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return await self.request("GET", url, token_store, **kwargs)

    async def post(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return await self.request("POST", url, token_store, **kwargs)

    async def put(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return await self.request("PUT", url, token_store, **kwargs)

    async def patch(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return await self.request("PATCH", url, token_store, **kwargs)

    async def delete(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return await self.request("DELETE", url, token_store, **kwargs)

    async def head(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return await self.request("HEAD", url, token_store, **kwargs)

    async def options(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return await self.request("OPTIONS", url, token_store, **kwargs)

    async def refresh(self, token_store: TokenStore) -> None:
        await self._refresher.refresh(token_store)

    async def get_token_details(self, access_token: str) -> dict[str, Any]:
        response = await self._transport.request(
            "POST",
            self._config.validate_token_url,
            data={"access_token": access_token},
            headers={"Accept": "application/json"},
        )
        return parse_token_details(response)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _send(self, token_store: TokenStore, context: RequestContext) -> RequestResult:
        sent_token = token_store.access_token
        response = await self._dispatch(token_store, context)

        if response.status_code in REFRESH_STATUS_CODES:
            if context.already_refreshed:
                raise unauthorized_after_refresh(context, response.status_code)
            logger.debug(
                "Received %s indicating expired access_token - attempting a token refresh.",
                response.status_code,
            )
            context.already_refreshed = True
            await self._refresher.refresh(token_store, stale_token=sent_token)
            return await self._send(token_store, context)

        return read_result(response, context.wants_json)

    async def _dispatch(self, token_store: TokenStore, context: RequestContext) -> httpx.Response:
        start = time.monotonic()
        try:
            response = await self._transport.request(
                context.method, context.url, **build_request_kwargs(token_store, context)
            )
        except NetworkError as exc:
            logger.error("PayPal request error: %s", exc)
            raise
        logger.debug(
            "%s %s (%.0f ms elapsed): %s",
            context.method, context.url, (time.monotonic() - start) * 1000, response.status_code,
        )
        return response
