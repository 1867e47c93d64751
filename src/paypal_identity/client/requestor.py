"""Authenticated request engine with transparent token refresh.

This module provides :class:`Requestor`, the blocking engine used to call
PayPal APIs on a user's behalf.  A single ``Requestor`` serves many users:
each call names the :class:`~paypal_identity.models.TokenStore` it runs
with.  On every call it:

- **Checks credentials** -- a store with neither token fails before any I/O.
- **Refreshes up front** -- an empty access token is refreshed before the
  first attempt.
- **Attaches the bearer token** and sends through the environment's
  pre-configured transport (timeout and TLS overrides).
- **Refreshes once on 401/403** -- then replays the same request once.  A
  second 401/403 raises
  :class:`~paypal_identity.exceptions.UnauthorizedAfterRefreshError`.
- **Decodes JSON on request** -- best effort; a body that does not parse is
  returned raw with ``decode_failed`` set.

Any other status code is handed back to the caller untouched.

See Also:
    :class:`~paypal_identity.client.async_requestor.AsyncRequestor` for the
    non-blocking equivalent.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from paypal_identity.client.refresher import CredentialRefresher
from paypal_identity.exceptions import (
    MalformedResponseError,
    MissingCredentialError,
    NetworkError,
    UnauthorizedAfterRefreshError,
)
from paypal_identity.models import RequestContext, RequestResult, StrategyConfig, TokenStore
from paypal_identity.transport import HttpTransport

logger = logging.getLogger(__name__)

REFRESH_STATUS_CODES = (401, 403)


def select_token_store(
    token_store: Optional[TokenStore], default: Optional[TokenStore]
) -> TokenStore:
    """Pick the per-call store, falling back to the engine's default one.

    Raises:
        MissingCredentialError: If neither is set, or the chosen store has
            neither an access token nor a refresh token.
    """
    chosen = token_store if token_store is not None else default
    if chosen is None:
        raise MissingCredentialError(
            "Missing token store: PayPal services need an access_token "
            "and/or refresh_token"
        )
    if not chosen.has_credentials():
        raise MissingCredentialError(
            "Missing access_token and refresh_token on token store. "
            "Need at least one of them."
        )
    return chosen


def build_request_kwargs(token_store: TokenStore, context: RequestContext) -> dict[str, Any]:
    """Keyword arguments for the transport, with the bearer token attached."""
    headers = dict(context.headers)
    headers["Authorization"] = f"Bearer {token_store.access_token}"
    if context.wants_json:
        headers.setdefault("Accept", "application/json")

    kwargs: dict[str, Any] = {"headers": headers}
    if context.params:
        kwargs["params"] = context.params
    if context.data is not None:
        kwargs["data"] = context.data
    elif context.json_body is not None:
        kwargs["json"] = context.json_body
    elif context.content is not None:
        kwargs["content"] = context.content
    return kwargs


def read_result(response: httpx.Response, wants_json: bool) -> RequestResult:
    """Wrap a response, decoding its body as JSON when asked to."""
    payload = response.content
    if not wants_json:
        return RequestResult(body=payload, response=response)
    if not payload:
        return RequestResult(body=None, response=response)
    try:
        return RequestResult(body=response.json(), response=response)
    except ValueError:
        logger.error("Expected JSON but got something else: %s", response.text[:200])
        return RequestResult(body=payload, response=response, decode_failed=True)


def parse_token_details(response: httpx.Response) -> dict[str, Any]:
    """Decode a validate-token response, which must be a JSON object."""
    try:
        details = response.json()
    except ValueError as exc:
        raise MalformedResponseError(
            f"Token details response is not valid JSON (HTTP {response.status_code})"
        ) from exc
    if not isinstance(details, dict):
        raise MalformedResponseError("Token details response is not a JSON object")
    return details


def unauthorized_after_refresh(context: RequestContext, status: int) -> UnauthorizedAfterRefreshError:
    logger.warning(
        "%s %s still rejected with HTTP %s after refreshing the access token",
        context.method, context.url, status,
    )
    return UnauthorizedAfterRefreshError(
        f"HTTP {status} after refreshing the access token", status_code=status
    )


class Requestor:
    """Blocking engine for calls made with a user's tokens.

    Args:
        config: Environment configuration (token endpoint, client
            credentials, TLS overrides).
        transport: Optional pre-built transport.  Defaults to one built from
            ``config.transport_options``.
        tokens: Optional default token store, used by calls that do not pass
            their own.

    Example::

        with Requestor(config) as requestor:
            body, response = requestor.get(
                "https://api.paypal.com/v1/identity/openidconnect/userinfo?schema=openid",
                token_store,
                wants_json=True,
            )
    """

    def __init__(
        self,
        config: StrategyConfig,
        transport: Optional[HttpTransport] = None,
        tokens: Optional[TokenStore] = None,
    ) -> None:
        self._config = config
        self._transport = transport or HttpTransport(config.transport_options)
        self._refresher = CredentialRefresher(config, self._transport)
        self._tokens = tokens

    @property
    def config(self) -> StrategyConfig:
        return self._config

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> Requestor:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        self._transport.close()

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    def execute(
        self, token_store: Optional[TokenStore], context: RequestContext
    ) -> RequestResult:
        """Run one call with the store's bearer token, refreshing as needed.

        Args:
            token_store: The user's credentials, or ``None`` to use the
                default store given at construction.
            context: The call to make.  ``already_refreshed`` is updated in
                place.

        Returns:
            A :class:`~paypal_identity.models.RequestResult`, whatever the
            status code (other than a repeated 401/403).

        Raises:
            MissingCredentialError: If no usable credentials exist.
            RefreshError: If a needed refresh fails.
            NetworkError: On transport failure (not retried).
            UnauthorizedAfterRefreshError: On 401/403 after one refresh.
        """
        tokens = select_token_store(token_store, self._tokens)
        if not tokens.access_token:
            logger.debug("No access_token for request, refreshing immediately.")
            self._refresher.refresh(tokens, stale_token=tokens.access_token)
        return self._send(tokens, context)

    def request(
        self,
        method: str,
        url: str,
        token_store: Optional[TokenStore] = None,
        **kwargs: Any,
    ) -> RequestResult:
        """Build a :class:`~paypal_identity.models.RequestContext` and execute it.

        Args:
            method: HTTP method.
            url: Absolute URL.
            token_store: The user's credentials (defaults to the engine's).
            **kwargs: ``headers``, ``params``, ``data``, ``json_body``,
                ``content``, and ``wants_json``.
        """
        context = RequestContext(method=method.upper(), url=url, **kwargs)
        return self.execute(token_store, context)

    def get(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return self.request("GET", url, token_store, **kwargs)

    def post(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return self.request("POST", url, token_store, **kwargs)

    def put(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return self.request("PUT", url, token_store, **kwargs)

    def patch(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return self.request("PATCH", url, token_store, **kwargs)

    def delete(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return self.request("DELETE", url, token_store, **kwargs)

    def head(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return self.request("HEAD", url, token_store, **kwargs)

    def options(self, url: str, token_store: Optional[TokenStore] = None, **kwargs: Any) -> RequestResult:
        return self.request("OPTIONS", url, token_store, **kwargs)

    def refresh(self, token_store: TokenStore) -> None:
        """Force a refresh of *token_store*'s access token."""
        self._refresher.refresh(token_store)

    def get_token_details(self, access_token: str) -> dict[str, Any]:
        """Ask the identity service about an access token (validity, scopes).

        The details are returned as parsed, without interpretation.

        Raises:
            NetworkError: On transport failure.
            MalformedResponseError: If the body is not a JSON object.
        """
        response = self._transport.request(
            "POST",
            self._config.validate_token_url,
            data={"access_token": access_token},
            headers={"Accept": "application/json"},
        )
        return parse_token_details(response)

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _send(self, token_store: TokenStore, context: RequestContext) -> RequestResult:
        sent_token = token_store.access_token
        response = self._dispatch(token_store, context)

        if response.status_code in REFRESH_STATUS_CODES:
            if context.already_refreshed:
                raise unauthorized_after_refresh(context, response.status_code)
            logger.debug(
                "Received %s indicating expired access_token - attempting a token refresh.",
                response.status_code,
            )
            context.already_refreshed = True
            self._refresher.refresh(token_store, stale_token=sent_token)
            return self._send(token_store, context)

        return read_result(response, context.wants_json)

    def _dispatch(self, token_store: TokenStore, context: RequestContext) -> httpx.Response:
        start = time.monotonic()
        try:
            response = self._transport.request(
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
