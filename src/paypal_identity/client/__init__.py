"""Authenticated request engines and the credential refresher.

Classes:
    :class:`Requestor` -- blocking engine backed by :class:`httpx.Client`.
    :class:`AsyncRequestor` -- non-blocking engine backed by :class:`httpx.AsyncClient`.
    :class:`CredentialRefresher` / :class:`AsyncCredentialRefresher` --
    refresh-token exchange used by the engines.

Example::

    from paypal_identity.client import Requestor

    with Requestor(config) as requestor:
        body, response = requestor.get(url, token_store, wants_json=True)
"""

from paypal_identity.client.async_requestor import AsyncRequestor
from paypal_identity.client.refresher import AsyncCredentialRefresher, CredentialRefresher
from paypal_identity.client.requestor import Requestor

__all__ = ["Requestor", "AsyncRequestor", "CredentialRefresher", "AsyncCredentialRefresher"]
