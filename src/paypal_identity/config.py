"""Configuration loading for identity environments.

This module turns application settings into the immutable
:class:`~paypal_identity.models.StrategyConfig` every component runs with:

* **Environment settings** -- :class:`EnvironmentSettings` accepts the
  kraken-style keys (``client_id``, ``secret``, ``return_url``,
  ``identityUrl``, ``baseUrl``, ...) as well as the passport-style ones
  (``clientID``, ``clientSecret``, ``callbackURL``, ...).
* **Environments file** -- :func:`load_environments` reads a JSON or YAML
  document mapping environment names to settings.
* **Credential resolution** -- :func:`resolve_credential` reads secrets
  from env vars or files so they need not live in the settings file.

All failures raise :class:`~paypal_identity.exceptions.ConfigError`.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from paypal_identity.exceptions import ConfigError
from paypal_identity.models import (
    DEFAULT_SCOPE,
    DEFAULT_TIMEOUT,
    StrategyConfig,
)

LIVE_ENVIRONMENT = "live"


class EnvironmentSettings(BaseModel):
    """Raw settings for one environment, as written by the application.

    ``identity_url`` is the identity service prefix from which the token and
    userinfo endpoints are derived; ``base_url`` is the web auth prefix from
    which the validate-token endpoint is derived.  Explicit URLs win over
    derived ones.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    client_id: str = Field(validation_alias=AliasChoices("client_id", "clientID"))
    secret: str = Field(validation_alias=AliasChoices("secret", "clientSecret", "client_secret"))
    return_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("return_url", "callbackURL", "callback_url")
    )
    authorization_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("authorizationUrl", "authorizationURL", "authorization_url"),
    )
    token_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("tokenURL", "tokenUrl", "token_url")
    )
    profile_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("profileURL", "profileUrl", "profile_url")
    )
    identity_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("identityUrl", "identity_url")
    )
    base_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("baseUrl", "base_url")
    )
    scope: str = DEFAULT_SCOPE
    insecure: bool = False
    strict_ssl: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("strictSSL", "strict_ssl")
    )
    secure_protocol: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("secureProtocol", "secure_protocol")
    )
    timeout: float = DEFAULT_TIMEOUT


def resolve_credential(value: str) -> str:
    """Resolve a credential value that may point elsewhere.

    Supported formats:
        - ``"env:VAR_NAME"`` -- reads ``os.environ["VAR_NAME"]``
        - ``"file:/path/to/file"`` -- reads file content, stripped of whitespace
        - anything else -- used literally

    Raises:
        ConfigError: If the variable is unset or the file cannot be read.
    """
    if value.startswith("env:"):
        var_name = value[4:]
        resolved = os.environ.get(var_name)
        if resolved is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set (source: {value})")
        return resolved

    if value.startswith("file:"):
        path = Path(value[5:]).expanduser()
        if not path.is_file():
            raise ConfigError(f"Credential file not found: {path} (source: {value})")
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc

    return value


def strategy_config_from_mapping(
    env: str, settings: Union[EnvironmentSettings, Mapping[str, Any]]
) -> StrategyConfig:
    """Build the strategy configuration for environment *env*.

    Args:
        env: Environment name (``"live"``, ``"sandbox"``, ...).
        settings: The environment's settings, raw or validated.

    Raises:
        ConfigError: If required settings are missing or invalid.
    """
    if not isinstance(settings, EnvironmentSettings):
        try:
            settings = EnvironmentSettings.model_validate(dict(settings))
        except ValidationError as exc:
            raise ConfigError(f"Invalid settings for environment '{env}': {exc}") from exc

    values: dict[str, Any] = {
        "client_id": resolve_credential(settings.client_id),
        "client_secret": resolve_credential(settings.secret),
        "callback_url": settings.return_url,
        "scope": settings.scope,
        "insecure": settings.insecure or settings.strict_ssl is False,
        "secure_protocol": settings.secure_protocol,
        "environment_name": env,
        "timeout": settings.timeout,
    }
    if settings.authorization_url:
        values["authorization_url"] = settings.authorization_url
    if settings.identity_url:
        values["token_url"] = settings.identity_url + "tokenservice"
        values["profile_url"] = settings.identity_url + "userinfo?schema=openid"
    if settings.token_url:
        values["token_url"] = settings.token_url
    if settings.profile_url:
        values["profile_url"] = settings.profile_url
    if settings.base_url:
        values["validate_token_url"] = settings.base_url + "protocol/openidconnect/v1/validatetoken"

    try:
        return StrategyConfig(**values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings for environment '{env}': {exc}") from exc


def _parse_document(path: Path, content: str) -> Any:
    if path.suffix.lower() == ".json":
        try:
            return json.loads(content)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc


def load_environments(path: Union[str, Path]) -> dict[str, EnvironmentSettings]:
    """Load every environment from a JSON or YAML settings file.

    The document is a mapping of environment name to settings.  Files with a
    ``.json`` suffix are parsed as JSON, anything else as YAML (a superset).

    Raises:
        ConfigError: If the file is missing, unparseable, or invalid.
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise ConfigError(f"Environments file not found: {path}")
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read environments file {path}: {exc}") from exc

    document = _parse_document(path, content)
    if not isinstance(document, dict):
        raise ConfigError(f"Environments file {path} must contain a mapping of environments")

    environments: dict[str, EnvironmentSettings] = {}
    for name, raw in document.items():
        if not isinstance(raw, dict):
            raise ConfigError(f"Environment '{name}' in {path} must be a mapping")
        try:
            environments[str(name)] = EnvironmentSettings.model_validate(raw)
        except ValidationError as exc:
            raise ConfigError(f"Invalid environment '{name}' in {path}: {exc}") from exc
    return environments


def load_environment(path: Union[str, Path], env: str) -> StrategyConfig:
    """Load one environment from a settings file and resolve its configuration."""
    environments = load_environments(path)
    if env not in environments:
        available = ", ".join(sorted(environments)) or "(none)"
        raise ConfigError(f"Environment '{env}' not found. Available environments: {available}")
    return strategy_config_from_mapping(env, environments[env])
