"""Exception hierarchy for paypal_identity.

All exceptions inherit from :class:`PayPalIdentityError`.  Every failure is
local to one request or one handshake attempt: nothing here is fatal to the
process, and callers decide whether to re-prompt the user, log out, or
surface the error.

Subclass hierarchy::

    PayPalIdentityError
    +-- ConfigError
    +-- MissingCredentialError
    +-- NetworkError
    +-- MalformedResponseError
    +-- UnauthorizedAfterRefreshError
    +-- RefreshError
    |   +-- RefreshNetworkError
    |   +-- RefreshHTTPError
    |   +-- RefreshProviderError
    |   |   +-- MalformedRefreshResponseError
    |   +-- DeferredTokenError
    +-- HandshakeError
        +-- HandshakeStateError
        +-- ExchangeError
        +-- ProfileError
        |   +-- MalformedProfileError
        +-- CredentialRejectedError
"""

from __future__ import annotations

from typing import Optional


class PayPalIdentityError(Exception):
    """Base exception for all paypal_identity errors.

    Args:
        message: Human-readable error description.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(PayPalIdentityError):
    """Raised for configuration problems (missing keys, unreadable files, bad credential sources)."""


class MissingCredentialError(PayPalIdentityError):
    """Raised when a token store has neither an access token nor a refresh token.

    This is a caller error, not a retryable failure: no network call is made.
    """


class NetworkError(PayPalIdentityError):
    """Raised on transport-level failures (timeout, DNS, connection refused, TLS).

    Never retried automatically.
    """


class MalformedResponseError(PayPalIdentityError):
    """Raised when a response that must be JSON cannot be decoded."""


class UnauthorizedAfterRefreshError(PayPalIdentityError):
    """Raised when a request is still rejected with 401/403 after one refresh."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


# --- Refresh ---


class RefreshError(PayPalIdentityError):
    """Base class for failures while exchanging a refresh token."""


class RefreshNetworkError(RefreshError):
    """The token endpoint could not be reached."""


class RefreshHTTPError(RefreshError):
    """The token endpoint answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class RefreshProviderError(RefreshError):
    """The token endpoint answered 2xx but reported an OAuth ``error``."""

    def __init__(self, message: str, code: str, description: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.description = description


class MalformedRefreshResponseError(RefreshProviderError):
    """The token endpoint body was not JSON or lacked ``access_token``."""

    def __init__(self, message: str, description: Optional[str] = None):
        super().__init__(message, code="malformed_response", description=description)


class DeferredTokenError(RefreshError):
    """A deferred refresh-token producer failed; the network was not contacted."""


# --- Handshake ---


class HandshakeError(PayPalIdentityError):
    """Base class for failures of the authorization-code handshake."""


class HandshakeStateError(HandshakeError):
    """A handshake step was invoked out of order or after a terminal state."""


class ExchangeError(HandshakeError):
    """The authorization code could not be exchanged for tokens."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class ProfileError(HandshakeError):
    """The user profile could not be fetched."""


class MalformedProfileError(ProfileError):
    """The profile claims could not be parsed as a JSON object."""


class CredentialRejectedError(HandshakeError):
    """The verify callback declined the user.

    Not a system fault: the credentials were valid but the application chose
    not to accept the user.
    """
