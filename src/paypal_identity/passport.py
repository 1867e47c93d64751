"""One identity environment: a login strategy and a request engine sharing a transport.

:class:`PayPalIdentity` is what an application instantiates per configured
environment (``live``, ``sandbox``, ...).  Session-layer glue (storing the
return URL, routing the callback, persisting users) stays in the
application; it calls :attr:`PayPalIdentity.strategy` at login and
:attr:`PayPalIdentity.requestor` for every API call afterwards.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional, Union

from paypal_identity.client.requestor import Requestor
from paypal_identity.config import (
    LIVE_ENVIRONMENT,
    EnvironmentSettings,
    load_environment,
    strategy_config_from_mapping,
)
from paypal_identity.exceptions import ConfigError
from paypal_identity.models import Profile, StrategyConfig
from paypal_identity.strategy import PayPalStrategy, VerifyCallback
from paypal_identity.transport import HttpTransport


class PayPalIdentity:
    """Strategy and requestor for one named environment.

    Args:
        env: Environment name.  ``"live"`` (or an empty name) marks the
            production environment.
        config: The environment's settings, raw or already resolved.
        verify: Verify callback for the strategy.  When omitted, a subclass
            must override :meth:`save_to_persistent_store`, which is then
            bound late as the callback.
        transport: Optional pre-built transport shared by both components.

    Raises:
        ConfigError: If neither ``verify`` nor a
            :meth:`save_to_persistent_store` override is supplied.

    Replace :attr:`strategy_class` with a :class:`PayPalStrategy` subclass
    to customize the handshake (e.g. :meth:`PayPalStrategy.complete_user_profile`).

    Example::

        identity = PayPalIdentity("sandbox", settings["sandbox"], verify=find_user)
        redirect_to = identity.strategy.begin_authorization().redirect_url
    """

    strategy_class: type[PayPalStrategy] = PayPalStrategy

    def __init__(
        self,
        env: Optional[str],
        config: Union[StrategyConfig, EnvironmentSettings, Mapping[str, Any]],
        verify: Optional[VerifyCallback] = None,
        transport: Optional[HttpTransport] = None,
    ) -> None:
        if verify is None and not self._overrides_persistent_store():
            raise ConfigError(
                "Pass a verify callback or override save_to_persistent_store()"
            )
        self.environment_name = env
        self.is_live = not env or env == LIVE_ENVIRONMENT
        if isinstance(config, StrategyConfig):
            self.config = config
        else:
            self.config = strategy_config_from_mapping(env or LIVE_ENVIRONMENT, config)

        self.transport = transport or HttpTransport(self.config.transport_options)
        self.strategy = self.strategy_class(
            self.config,
            verify or self._delegate_verify,
            transport=self.transport,
        )
        self.requestor = Requestor(self.config, transport=self.transport)

    @classmethod
    def from_file(
        cls, path: Union[str, Path], env: str, verify: Optional[VerifyCallback] = None
    ) -> PayPalIdentity:
        """Build the identity for *env* from a JSON or YAML environments file."""
        return cls(env, load_environment(path, env), verify=verify)

    def __enter__(self) -> PayPalIdentity:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        self.transport.close()

    def save_to_persistent_store(
        self, request: Any, access_token: str, refresh_token: Optional[str], profile: Profile
    ) -> Any:
        """Default verify hook: persist the user and return it.

        Required override when no ``verify`` callback is passed.
        """
        raise NotImplementedError(
            "Pass a verify callback or override save_to_persistent_store()"
        )

    @classmethod
    def _overrides_persistent_store(cls) -> bool:
        return cls.save_to_persistent_store is not PayPalIdentity.save_to_persistent_store

    def _delegate_verify(
        self, request: Any, access_token: str, refresh_token: Optional[str], profile: Profile
    ) -> Any:
        return self.save_to_persistent_store(request, access_token, refresh_token, profile)
