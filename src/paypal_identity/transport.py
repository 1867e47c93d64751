"""Thin HTTP transports pre-configured with timeout and TLS overrides.

Every outbound call made by the refresher, the request engine, and the
handshake goes through one of these transports, so the ``insecure`` and
``secure_protocol`` options apply uniformly without being threaded through
each call.

Classes:
    :class:`HttpTransport` -- blocking, backed by :class:`httpx.Client`.
    :class:`AsyncHttpTransport` -- non-blocking, backed by :class:`httpx.AsyncClient`.

Transport-level failures are raised as
:class:`~paypal_identity.exceptions.NetworkError`; HTTP status codes are
never interpreted here.
"""

from __future__ import annotations

import logging
import ssl
from typing import Any, Optional, Union

import httpx

from paypal_identity.exceptions import ConfigError, NetworkError
from paypal_identity.models import TransportOptions

logger = logging.getLogger(__name__)

# OpenSSL method names as used by Node-style ``secureProtocol`` settings,
# plus the plain protocol names.
_PROTOCOL_VERSIONS: dict[str, ssl.TLSVersion] = {
    "TLSv1_method": ssl.TLSVersion.TLSv1,
    "TLSv1_1_method": ssl.TLSVersion.TLSv1_1,
    "TLSv1_2_method": ssl.TLSVersion.TLSv1_2,
    "TLSv1_3_method": ssl.TLSVersion.TLSv1_3,
    "TLSv1": ssl.TLSVersion.TLSv1,
    "TLSv1.1": ssl.TLSVersion.TLSv1_1,
    "TLSv1.2": ssl.TLSVersion.TLSv1_2,
    "TLSv1.3": ssl.TLSVersion.TLSv1_3,
}


def build_verify(options: TransportOptions) -> Union[bool, ssl.SSLContext]:
    """Translate transport options into httpx's ``verify`` argument.

    Args:
        options: The transport options.

    Returns:
        ``True`` for default verification, ``False`` for insecure mode, or an
        :class:`ssl.SSLContext` pinned to the requested protocol version.

    Raises:
        ConfigError: If ``secure_protocol`` names an unknown protocol.
    """
    if not options.secure_protocol:
        return not options.insecure

    version = _PROTOCOL_VERSIONS.get(options.secure_protocol)
    if version is None:
        known = ", ".join(sorted(_PROTOCOL_VERSIONS))
        raise ConfigError(
            f"Unknown secure_protocol '{options.secure_protocol}'. Known values: {known}"
        )

    context = ssl.create_default_context()
    if options.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    context.minimum_version = version
    context.maximum_version = version
    return context


class HttpTransport:
    """Blocking transport shared by every component of one environment.

    Args:
        options: Timeout and TLS overrides applied to every call.
        client: Optional pre-built :class:`httpx.Client`.  When given, the
            caller owns its configuration (used to plug in
            :class:`httpx.MockTransport` in tests).

    Example::

        with HttpTransport(TransportOptions(insecure=True)) as transport:
            response = transport.request("GET", "https://localhost:8443/")
    """

    def __init__(
        self,
        options: Optional[TransportOptions] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self._options = options or TransportOptions()
        self._client = client
        self._owns_client = client is None

    @property
    def options(self) -> TransportOptions:
        return self._options

    def __enter__(self) -> HttpTransport:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                timeout=self._options.timeout,
                verify=build_verify(self._options),
            )
        return self._client

    def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one request and read the whole response.

        Args:
            method: HTTP method.
            url: Absolute URL.
            **kwargs: Forwarded to :meth:`httpx.Client.request`.

        Returns:
            The :class:`httpx.Response`, whatever its status code.

        Raises:
            NetworkError: On connection, timeout, TLS, or protocol errors.
        """
        try:
            return self._get_client().request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise NetworkError(f"{method} {url} failed: {exc}") from exc

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None


class AsyncHttpTransport:
    """Non-blocking counterpart of :class:`HttpTransport`."""

    def __init__(
        self,
        options: Optional[TransportOptions] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._options = options or TransportOptions()
        self._client = client
        self._owns_client = client is None

    @property
    def options(self) -> TransportOptions:
        return self._options

    async def __aenter__(self) -> AsyncHttpTransport:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._options.timeout,
                verify=build_verify(self._options),
            )
        return self._client

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one request; see :meth:`HttpTransport.request`."""
        try:
            return await self._get_client().request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise NetworkError(f"{method} {url} failed: {exc}") from exc

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
