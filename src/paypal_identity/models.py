"""Data shapes shared across paypal_identity.

The models fall into two groups:

**Configuration models** -- immutable Pydantic models resolved once and
shared across threads and tasks:
    :class:`StrategyConfig` and :class:`TransportOptions`.

**Per-user and per-call state** -- plain dataclasses owned by the caller:
    :class:`TokenStore` (mutated in place on refresh),
    :class:`RequestContext` (one outbound call), and
    :class:`RequestResult` (what the request engine hands back).

The normalized identity record, :class:`Profile`, and the token-endpoint
result, :class:`TokenSet`, are frozen Pydantic models.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_AUTHORIZATION_URL = (
    "https://www.paypal.com/webapps/auth/protocol/openidconnect/v1/authorize"
)
DEFAULT_TOKEN_URL = "https://api.paypal.com/v1/identity/openidconnect/tokenservice"
DEFAULT_PROFILE_URL = (
    "https://api.paypal.com/v1/identity/openidconnect/userinfo?schema=openid"
)
DEFAULT_BASE_URL = "https://www.paypal.com/webapps/auth/"
DEFAULT_VALIDATE_TOKEN_URL = DEFAULT_BASE_URL + "protocol/openidconnect/v1/validatetoken"
DEFAULT_SCOPE = "openid profile email address"
DEFAULT_TIMEOUT = 30.0


# --- Configuration ---


class TransportOptions(BaseModel):
    """Options every outbound HTTP call is made with.

    Attributes:
        timeout: Seconds before any single call is abandoned.
        insecure: Disable TLS certificate verification.
        secure_protocol: Pin a TLS protocol version, e.g. ``"TLSv1_2_method"``
            or ``"TLSv1.3"``.
    """

    model_config = ConfigDict(frozen=True)

    timeout: float = DEFAULT_TIMEOUT
    insecure: bool = False
    secure_protocol: Optional[str] = None


class StrategyConfig(BaseModel):
    """Immutable configuration for one identity environment.

    Resolved once at construction and safely shared by concurrent handshakes
    and requests.

    Example::

        StrategyConfig(
            client_id="123-456-789",
            client_secret="shhh-its-a-secret",
            callback_url="https://www.example.net/auth/paypal/callback",
        )
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str
    callback_url: Optional[str] = None
    authorization_url: str = DEFAULT_AUTHORIZATION_URL
    token_url: str = DEFAULT_TOKEN_URL
    profile_url: str = DEFAULT_PROFILE_URL
    validate_token_url: str = DEFAULT_VALIDATE_TOKEN_URL
    scope: str = DEFAULT_SCOPE
    insecure: bool = False
    secure_protocol: Optional[str] = None
    environment_name: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT

    @property
    def transport_options(self) -> TransportOptions:
        """The TLS and timeout options to build a transport from."""
        return TransportOptions(
            timeout=self.timeout,
            insecure=self.insecure,
            secure_protocol=self.secure_protocol,
        )


# --- Identity ---


class ProfileName(BaseModel):
    """Structured name of a user."""

    model_config = ConfigDict(frozen=True)

    family_name: Optional[str] = None
    given_name: Optional[str] = None
    formatted: Optional[str] = None


class Profile(BaseModel):
    """Normalized identity record built from the provider's claims.

    ``raw`` keeps the original response body and ``raw_json`` the parsed
    claims, for consumers that need fields beyond the canonical ones.
    """

    model_config = ConfigDict(frozen=True)

    provider: str = "paypal"
    id: Optional[str] = None
    display_name: Optional[str] = None
    name: ProfileName = Field(default_factory=ProfileName)
    emails: list[str] = Field(default_factory=list)
    country: Optional[str] = None
    raw: Optional[str] = None
    raw_json: dict[str, Any] = Field(default_factory=dict)


class TokenSet(BaseModel):
    """Tokens returned by the token endpoint for an authorization code."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    raw: dict[str, Any] = Field(default_factory=dict)


# --- Token store ---


@dataclass(frozen=True)
class LiteralRefreshToken:
    """A refresh token held as a plain string."""

    value: str

    def resolve(self, token_store: TokenStore) -> str:
        return self.value


@dataclass(frozen=True)
class DeferredRefreshToken:
    """A refresh token produced on demand.

    The producer receives the owning :class:`TokenStore` and returns the
    refresh token, or raises to abort the refresh.  This lets callers keep
    the real token elsewhere (e.g. decrypt it only when needed) or run an
    extra safety check before every refresh.
    """

    producer: Callable[[TokenStore], str]

    def resolve(self, token_store: TokenStore) -> str:
        return self.producer(token_store)


RefreshTokenSource = Union[LiteralRefreshToken, DeferredRefreshToken]


@dataclass
class TokenStore:
    """One user's credential state for one environment.

    Created by the caller (or from a :class:`TokenSet` after a handshake),
    mutated in place whenever the access token is refreshed, and discarded by
    the caller on logout.  Plain strings passed as ``refresh_token`` are
    wrapped in :class:`LiteralRefreshToken`.

    Attributes:
        access_token: Short-lived bearer token.  May be empty, in which case
            the first request refreshes before it is sent.
        refresh_token: Long-lived token, or a deferred producer of one.
        on_token_updated: Called with this store after every successful
            refresh, e.g. to persist the new access token.
    """

    access_token: str = ""
    refresh_token: Optional[Union[str, RefreshTokenSource]] = None
    on_token_updated: Optional[Callable[[TokenStore], None]] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)
    _async_lock: Optional[asyncio.Lock] = field(default=None, init=False, repr=False, compare=False)
    _async_lock_guard: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        if isinstance(self.refresh_token, str):
            self.refresh_token = (
                LiteralRefreshToken(self.refresh_token) if self.refresh_token else None
            )

    @classmethod
    def from_token_set(
        cls,
        token_set: TokenSet,
        on_token_updated: Optional[Callable[[TokenStore], None]] = None,
    ) -> TokenStore:
        """Build a store from the tokens a handshake produced."""
        return cls(
            access_token=token_set.access_token,
            refresh_token=token_set.refresh_token,
            on_token_updated=on_token_updated,
        )

    def has_credentials(self) -> bool:
        """Whether at least one of the access or refresh token is present."""
        return bool(self.access_token) or self.refresh_token is not None

    @property
    def refresh_lock(self) -> threading.Lock:
        """Serializes synchronous refreshes of this store."""
        return self._lock

    @property
    def async_refresh_lock(self) -> asyncio.Lock:
        """Serializes asynchronous refreshes of this store."""
        with self._async_lock_guard:
            if self._async_lock is None:
                self._async_lock = asyncio.Lock()
        return self._async_lock


# --- Requests ---


@dataclass
class RequestContext:
    """One outbound call made on a user's behalf.

    ``already_refreshed`` is managed by the request engine: it is set once a
    refresh has been attempted for this call so that a second 401/403 is
    surfaced instead of looping.
    """

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    data: Optional[dict[str, Any]] = None
    json_body: Optional[Any] = None
    content: Optional[Union[str, bytes]] = None
    wants_json: bool = False
    already_refreshed: bool = False


@dataclass
class RequestResult:
    """What the request engine returns for a completed call.

    Unpacks as ``(body, response)``.  ``decode_failed`` is set when JSON was
    requested but the body could not be decoded, in which case ``body`` holds
    the raw bytes.
    """

    body: Any
    response: httpx.Response
    decode_failed: bool = False

    @property
    def status_code(self) -> int:
        return self.response.status_code

    def __iter__(self) -> Iterator[Any]:
        yield self.body
        yield self.response
