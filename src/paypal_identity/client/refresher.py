"""Exchange a refresh token for a new access token.

This module provides :class:`CredentialRefresher` and its non-blocking
twin :class:`AsyncCredentialRefresher`.  Both POST
``grant_type=refresh_token`` to the configured token endpoint,
authenticating the refresh call itself with HTTP Basic
``client_id:client_secret``, and write the new access token into the
caller's :class:`~paypal_identity.models.TokenStore` in place.

Refreshes of one token store are serialized on the store's own lock.  A
caller that passes the ``stale_token`` it saw rejected, and finds on
acquiring the lock that another caller already replaced it, returns
without a second network refresh.

The store's ``on_token_updated`` observer runs after the lock is released,
so it may itself refresh or make requests with the store.  An observer
failure is logged and does not fail the refresh.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from paypal_identity.exceptions import (
    DeferredTokenError,
    MalformedRefreshResponseError,
    MissingCredentialError,
    NetworkError,
    RefreshHTTPError,
    RefreshNetworkError,
    RefreshProviderError,
)
from paypal_identity.models import StrategyConfig, TokenStore
from paypal_identity.transport import AsyncHttpTransport, HttpTransport

logger = logging.getLogger(__name__)


def resolve_refresh_token(token_store: TokenStore) -> str:
    """Return the refresh token, invoking a deferred producer if needed.

    Raises:
        DeferredTokenError: If the producer raises.
        MissingCredentialError: If there is no refresh token, or it is empty.
    """
    source = token_store.refresh_token
    if source is None:
        raise MissingCredentialError("No refresh token available on the token store")
    try:
        value = source.resolve(token_store)
    except Exception as exc:
        logger.warning("Refresh token producer failed: %s", exc)
        raise DeferredTokenError(f"Refresh token producer failed: {exc}") from exc
    if not value:
        raise MissingCredentialError("Refresh token resolved to an empty value")
    return value


def build_refresh_request(config: StrategyConfig, refresh_token: str) -> dict[str, Any]:
    """Keyword arguments for the token-endpoint POST."""
    return {
        "data": {"grant_type": "refresh_token", "refresh_token": refresh_token},
        "headers": {"Accept": "application/json"},
        "auth": httpx.BasicAuth(config.client_id, config.client_secret),
    }


def parse_refresh_response(response: httpx.Response) -> str:
    """Extract the new access token from a token-endpoint response.

    Raises:
        RefreshHTTPError: On a non-2xx status.
        RefreshProviderError: If the body carries an OAuth ``error``.
        MalformedRefreshResponseError: If the body is not a JSON object or
            has no ``access_token``.
    """
    status = response.status_code
    if status < 200 or status >= 300:
        logger.warning("Failed to refresh access token: HTTP %s", status)
        raise RefreshHTTPError(f"HTTP failure refreshing token: {status}", status_code=status)

    try:
        payload = response.json()
    except ValueError as exc:
        logger.warning("Invalid body received from token refresh: %s", response.text[:200])
        raise MalformedRefreshResponseError(
            "Token refresh response is not valid JSON", description=str(exc)
        ) from exc

    if not isinstance(payload, dict):
        logger.warning("Invalid body received from token refresh: %s", response.text[:200])
        raise MalformedRefreshResponseError("Token refresh response is not a JSON object")

    if payload.get("error"):
        code = str(payload["error"])
        description = payload.get("error_description")
        logger.warning("Failed to refresh access token: %s (%s)", code, description)
        raise RefreshProviderError(
            f"Token refresh rejected: {code}", code=code, description=description
        )

    access_token = payload.get("access_token")
    if not isinstance(access_token, str) or not access_token:
        logger.warning("Token refresh response has no access_token")
        raise MalformedRefreshResponseError("Token refresh response missing 'access_token' field")
    return access_token


def _already_refreshed(token_store: TokenStore, stale_token: Optional[str]) -> bool:
    return (
        stale_token is not None
        and bool(token_store.access_token)
        and token_store.access_token != stale_token
    )


def _notify_observer(token_store: TokenStore) -> None:
    if token_store.on_token_updated is None:
        return
    try:
        token_store.on_token_updated(token_store)
    except Exception:
        logger.warning("on_token_updated observer failed", exc_info=True)


class CredentialRefresher:
    """Blocking refresh-token exchange against the token endpoint.

    Args:
        config: Environment configuration with ``token_url`` and client
            credentials.
        transport: Transport carrying the environment's TLS overrides.
    """

    def __init__(self, config: StrategyConfig, transport: HttpTransport) -> None:
        self._config = config
        self._transport = transport

    def refresh(self, token_store: TokenStore, stale_token: Optional[str] = None) -> None:
        """Replace ``token_store.access_token`` with a freshly issued token.

        Args:
            token_store: The store to refresh, mutated in place.
            stale_token: The access token the caller saw rejected.  When set
                and the store already holds a different token, no network
                call is made.

        Raises:
            RefreshError: On any refresh failure.  The access token is left
                unchanged.
            MissingCredentialError: If the store has no refresh token.
        """
        with token_store.refresh_lock:
            if _already_refreshed(token_store, stale_token):
                logger.debug("Access token was refreshed by a concurrent request, reusing it.")
                return
            refresh_token = resolve_refresh_token(token_store)
            try:
                response = self._transport.request(
                    "POST",
                    self._config.token_url,
                    **build_refresh_request(self._config, refresh_token),
                )
            except NetworkError as exc:
                logger.warning("Failed to refresh access token: %s", exc)
                raise RefreshNetworkError(f"Token refresh failed: {exc}") from exc
            token_store.access_token = parse_refresh_response(response)
            logger.debug("Successfully refreshed access token.")
        _notify_observer(token_store)


class AsyncCredentialRefresher:
    """Non-blocking counterpart of :class:`CredentialRefresher`."""

    def __init__(self, config: StrategyConfig, transport: AsyncHttpTransport) -> None:
        self._config = config
        self._transport = transport

    async def refresh(self, token_store: TokenStore, stale_token: Optional[str] = None) -> None:
        """See :meth:`CredentialRefresher.refresh`."""
        async with token_store.async_refresh_lock:
            if _already_refreshed(token_store, stale_token):
                logger.debug("Access token was refreshed by a concurrent request, reusing it.")
                return
            refresh_token = resolve_refresh_token(token_store)
            try:
                response = await self._transport.request(
                    "POST",
                    self._config.token_url,
                    **build_refresh_request(self._config, refresh_token),
                )
            except NetworkError as exc:
                logger.warning("Failed to refresh access token: %s", exc)
                raise RefreshNetworkError(f"Token refresh failed: {exc}") from exc
            token_store.access_token = parse_refresh_response(response)
            logger.debug("Successfully refreshed access token.")
        _notify_observer(token_store)
