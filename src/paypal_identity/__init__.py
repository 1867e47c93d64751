"""paypal_identity -- log users in with PayPal and call APIs on their behalf.

This package implements the OAuth2 credential lifecycle for PayPal's
OpenID Connect identity service:

* the **authorization-code handshake** that turns a provider callback into
  tokens and a normalized user profile, and
* the **authenticated request engine** that attaches bearer tokens to
  outbound calls, refreshes an expired access token once, and replays the
  call.

Typical usage::

    from paypal_identity import PayPalIdentity, TokenStore

    identity = PayPalIdentity("sandbox", settings, verify=find_or_create_user)
    redirect_to = identity.strategy.begin_authorization().redirect_url
    # ... provider redirects back with ?code=...
    handshake = identity.strategy.authenticate(request, code)
    tokens = TokenStore.from_token_set(handshake.tokens)
    body, response = identity.requestor.get(url, tokens, wants_json=True)

Modules:
    models: Token store, request context, profile, and configuration models.
    strategy: Authorization-code handshake.
    profile: Claims normalization.
    client: Request engines and the credential refresher.
    transport: HTTP transports carrying timeout and TLS overrides.
    config: Environment settings loading.
    exceptions: Error hierarchy.
"""

__version__ = "0.3.0"

from paypal_identity.client import AsyncRequestor, Requestor
from paypal_identity.models import (
    DeferredRefreshToken,
    LiteralRefreshToken,
    Profile,
    RequestContext,
    RequestResult,
    StrategyConfig,
    TokenSet,
    TokenStore,
)
from paypal_identity.passport import PayPalIdentity
from paypal_identity.profile import normalize_profile
from paypal_identity.strategy import Handshake, HandshakeState, PayPalStrategy

__all__ = [
    "AsyncRequestor",
    "DeferredRefreshToken",
    "Handshake",
    "HandshakeState",
    "LiteralRefreshToken",
    "PayPalIdentity",
    "PayPalStrategy",
    "Profile",
    "RequestContext",
    "RequestResult",
    "Requestor",
    "StrategyConfig",
    "TokenSet",
    "TokenStore",
    "normalize_profile",
]
