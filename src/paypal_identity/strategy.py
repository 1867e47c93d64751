"""PayPal authorization-code strategy and its per-attempt handshake.

This module provides :class:`PayPalStrategy`, which authenticates users by
delegating to PayPal's OpenID Connect service using the OAuth 2.0
authorization-code grant:

1. :meth:`PayPalStrategy.begin_authorization` builds the URL the browser is
   redirected to.
2. :meth:`Handshake.complete_authorization` exchanges the code the provider
   sent back for access and refresh tokens.
3. :meth:`Handshake.fetch_profile` reads the userinfo endpoint and
   normalizes the claims, then runs the overridable
   :meth:`PayPalStrategy.complete_user_profile` hook.
4. :meth:`Handshake.verify` hands tokens and profile to the application's
   verify callback, which returns the user or a falsy value to decline.

The strategy itself holds only immutable configuration and is shared by
concurrent handshakes; each login attempt's state lives in its own
:class:`Handshake`.  Every outbound call goes through one transport
pre-configured with the environment's TLS overrides.

Example::

    def verify(request, access_token, refresh_token, profile):
        return User.find_or_create(paypal_id=profile.id)

    strategy = PayPalStrategy(config, verify)
    redirect_to = strategy.begin_authorization().redirect_url
    ...
    handshake = strategy.authenticate(request, code=request.args["code"])
    login(handshake.user)
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from paypal_identity.exceptions import (
    CredentialRejectedError,
    ExchangeError,
    HandshakeStateError,
    NetworkError,
    ProfileError,
)
from paypal_identity.models import Profile, StrategyConfig, TokenSet
from paypal_identity.profile import normalize_profile
from paypal_identity.transport import HttpTransport

logger = logging.getLogger(__name__)

VerifyCallback = Callable[[Any, str, Optional[str], Profile], Any]
"""``verify(request, access_token, refresh_token, profile) -> user``.

Return the application's user object, or ``None``/``False`` if the
credentials should be rejected.  Raise to report a system error.
"""


class HandshakeState(str, enum.Enum):
    """Progress of one authorization-code handshake."""

    IDLE = "idle"
    REDIRECT_ISSUED = "redirect_issued"
    CODE_RECEIVED = "code_received"
    TOKEN_EXCHANGED = "token_exchanged"
    PROFILE_FETCHED = "profile_fetched"
    VERIFIED = "verified"
    FAILED = "failed"


class PayPalStrategy:
    """Authorization-code strategy for PayPal's identity service.

    Args:
        config: Immutable environment configuration.
        verify: Callback deciding whether to accept the authenticated user.
        transport: Optional pre-built transport.  Defaults to one built from
            ``config.transport_options``.

    Subclass and override :meth:`complete_user_profile` to enrich the
    profile before verification.
    """

    def __init__(
        self,
        config: StrategyConfig,
        verify: VerifyCallback,
        transport: Optional[HttpTransport] = None,
    ) -> None:
        self._config = config
        self._verify = verify
        self._transport = transport or HttpTransport(config.transport_options)

    @property
    def config(self) -> StrategyConfig:
        return self._config

    @property
    def name(self) -> str:
        """Strategy name, the environment name when one is configured."""
        return self._config.environment_name or "paypal"

    def __enter__(self) -> PayPalStrategy:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        self._transport.close()

    # ------------------------------------------------------------------ #
    # Handshake entry points
    # ------------------------------------------------------------------ #

    def authorization_url(self, state: Optional[str] = None) -> str:
        """Build the provider URL the user's browser is redirected to."""
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": self._config.client_id,
            "scope": self._config.scope,
        }
        if self._config.callback_url:
            params["redirect_uri"] = self._config.callback_url
        if state:
            params["state"] = state
        return f"{self._config.authorization_url}?{urlencode(params)}"

    def begin_authorization(self, state: Optional[str] = None) -> Handshake:
        """Start a handshake by issuing the authorization redirect.

        Args:
            state: Optional opaque value echoed back by the provider, for
                CSRF protection.
        """
        handshake = Handshake(self)
        handshake.redirect_url = self.authorization_url(state)
        handshake.state = HandshakeState.REDIRECT_ISSUED
        return handshake

    def resume_authorization(self) -> Handshake:
        """Handshake for a callback whose redirect was issued by an earlier request."""
        handshake = Handshake(self)
        handshake.state = HandshakeState.REDIRECT_ISSUED
        return handshake

    def authenticate(self, request: Any, code: str) -> Handshake:
        """Run the callback half of the handshake: exchange, profile, verify.

        Args:
            request: The application's request object, passed through to the
                verify callback.
            code: The authorization code from the provider callback.

        Returns:
            The :class:`Handshake` in state ``VERIFIED``.

        Raises:
            ExchangeError: If the code could not be exchanged.
            ProfileError: If the profile could not be fetched or parsed.
            CredentialRejectedError: If the verify callback declined the user.
        """
        handshake = self.resume_authorization()
        handshake.complete_authorization(code)
        handshake.fetch_profile()
        handshake.verify(request)
        return handshake

    # ------------------------------------------------------------------ #
    # Provider calls
    # ------------------------------------------------------------------ #

    def exchange_code(self, code: str) -> TokenSet:
        """Exchange an authorization code at the token endpoint.

        Raises:
            ExchangeError: On transport failure, non-2xx status, an OAuth
                ``error`` in the body, or a body without ``access_token``.
        """
        data = {"grant_type": "authorization_code", "code": code}
        if self._config.callback_url:
            data["redirect_uri"] = self._config.callback_url

        try:
            response = self._transport.request(
                "POST",
                self._config.token_url,
                data=data,
                headers={"Accept": "application/json"},
                auth=httpx.BasicAuth(self._config.client_id, self._config.client_secret),
            )
        except NetworkError as exc:
            raise ExchangeError(f"Failed to obtain access token: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and payload.get("error"):
            error_code = str(payload["error"])
            description = payload.get("error_description") or ""
            raise ExchangeError(
                f"Failed to obtain access token: {error_code} {description}".rstrip(),
                status_code=response.status_code,
                code=error_code,
            )
        if response.status_code < 200 or response.status_code >= 300:
            raise ExchangeError(
                f"Failed to obtain access token: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise ExchangeError(
                "Token response missing 'access_token' field",
                status_code=response.status_code,
            )

        expires_in = payload.get("expires_in")
        try:
            return TokenSet(
                access_token=payload["access_token"],
                refresh_token=payload.get("refresh_token"),
                id_token=payload.get("id_token"),
                token_type=payload.get("token_type"),
                expires_in=int(expires_in) if expires_in is not None else None,
                scope=payload.get("scope"),
                raw=payload,
            )
        except (ValidationError, ValueError, TypeError) as exc:
            raise ExchangeError(
                f"Malformed token response: {exc}", status_code=response.status_code
            ) from exc

    def user_profile(self, access_token: str) -> Profile:
        """Fetch the userinfo claims and build the normalized profile.

        Raises:
            ProfileError: If the profile cannot be fetched.
            MalformedProfileError: If the claims are not a JSON object.
        """
        try:
            response = self._transport.request(
                "GET",
                self._config.profile_url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                },
            )
        except NetworkError as exc:
            raise ProfileError(f"Failed to fetch user profile: {exc}") from exc

        if response.status_code < 200 or response.status_code >= 300:
            raise ProfileError(f"Failed to fetch user profile: HTTP {response.status_code}")

        profile = normalize_profile(response.text)
        return self.complete_user_profile(access_token, profile)

    def complete_user_profile(self, access_token: str, profile: Profile) -> Profile:
        """Hook for adding information to the normalized profile.

        Does nothing by default, so overrides need not call ``super()``.
        """
        return profile

    def verify_user(
        self, request: Any, access_token: str, refresh_token: Optional[str], profile: Profile
    ) -> Any:
        return self._verify(request, access_token, refresh_token, profile)


class Handshake:
    """State of one authorization-code login attempt.

    Steps must run in order; calling one out of order, or after the
    handshake failed, raises :class:`~paypal_identity.exceptions.HandshakeStateError`.

    Attributes:
        state: Current :class:`HandshakeState`.
        redirect_url: Provider URL issued by :meth:`PayPalStrategy.begin_authorization`.
        tokens: Tokens obtained by :meth:`complete_authorization`.
        profile: Profile obtained by :meth:`fetch_profile`.
        user: The application user accepted by :meth:`verify`.
        error: The exception that moved the handshake to ``FAILED``.
    """

    def __init__(self, strategy: PayPalStrategy) -> None:
        self._strategy = strategy
        self.state = HandshakeState.IDLE
        self.redirect_url: Optional[str] = None
        self.tokens: Optional[TokenSet] = None
        self.profile: Optional[Profile] = None
        self.user: Any = None
        self.error: Optional[Exception] = None

    def complete_authorization(self, code: str) -> TokenSet:
        """Exchange the callback's authorization code for tokens."""
        self._require(HandshakeState.REDIRECT_ISSUED)
        if not code:
            raise self._fail(ExchangeError("No authorization code received"))
        self.state = HandshakeState.CODE_RECEIVED
        try:
            self.tokens = self._strategy.exchange_code(code)
        except ExchangeError as exc:
            logger.warning("Authorization code exchange failed: %s", exc)
            raise self._fail(exc)
        self.state = HandshakeState.TOKEN_EXCHANGED
        return self.tokens

    def fetch_profile(self) -> Profile:
        """Fetch and normalize the profile for the exchanged access token."""
        self._require(HandshakeState.TOKEN_EXCHANGED)
        assert self.tokens is not None
        try:
            self.profile = self._strategy.user_profile(self.tokens.access_token)
        except Exception as exc:
            logger.warning("Fetching user profile failed: %s", exc)
            raise self._fail(exc)
        self.state = HandshakeState.PROFILE_FETCHED
        return self.profile

    def verify(self, request: Any) -> Any:
        """Ask the application's verify callback to accept the user.

        Returns:
            The user object returned by the callback.

        Raises:
            CredentialRejectedError: If the callback returned a falsy value.
        """
        self._require(HandshakeState.PROFILE_FETCHED)
        assert self.tokens is not None and self.profile is not None
        try:
            user = self._strategy.verify_user(
                request, self.tokens.access_token, self.tokens.refresh_token, self.profile
            )
        except Exception as exc:
            raise self._fail(exc)
        if not user:
            raise self._fail(CredentialRejectedError("Verify callback rejected the user"))
        self.user = user
        self.state = HandshakeState.VERIFIED
        return user

    def _require(self, expected: HandshakeState) -> None:
        if self.state is not expected:
            raise HandshakeStateError(
                f"Handshake is in state '{self.state.value}', expected '{expected.value}'"
            )

    def _fail(self, exc: Exception) -> Exception:
        self.state = HandshakeState.FAILED
        self.error = exc
        return exc
