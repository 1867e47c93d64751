"""Normalize PayPal identity claims into a :class:`~paypal_identity.models.Profile`."""

from __future__ import annotations

import json
from typing import Any, Optional, Union

from paypal_identity.exceptions import MalformedProfileError
from paypal_identity.models import Profile, ProfileName

PROVIDER = "paypal"


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def normalize_profile(body: Union[str, bytes, dict[str, Any]]) -> Profile:
    """Map provider claims onto the canonical profile shape.

    Missing claims map to ``None`` (or an empty ``emails`` list); only claims
    that are not a JSON object at all are an error.

    Args:
        body: The userinfo response body, or already-parsed claims.

    Returns:
        The normalized :class:`~paypal_identity.models.Profile`.

    Raises:
        MalformedProfileError: If *body* is not a JSON object.
    """
    if isinstance(body, dict):
        claims = body
        try:
            raw = json.dumps(body)
        except (TypeError, ValueError) as exc:
            raise MalformedProfileError(f"Profile claims are not JSON-serializable: {exc}") from exc
    else:
        raw = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        try:
            claims = json.loads(raw)
        except ValueError as exc:
            raise MalformedProfileError(f"Profile claims are not valid JSON: {exc}") from exc
        if not isinstance(claims, dict):
            raise MalformedProfileError(
                f"Profile claims must be a JSON object (got {type(claims).__name__})"
            )

    display_name = _text(claims.get("name"))
    email = _text(claims.get("email"))
    address = claims.get("address")
    country = _text(address.get("country")) if isinstance(address, dict) else None

    return Profile(
        provider=PROVIDER,
        id=_text(claims.get("user_id")),
        display_name=display_name,
        name=ProfileName(
            family_name=_text(claims.get("family_name")),
            given_name=_text(claims.get("given_name")),
            formatted=display_name,
        ),
        emails=[email] if email else [],
        country=country,
        raw=raw,
        raw_json=claims,
    )
