"""Authentication for cloudctl: OIDC login, credential caching, and refresh.

The main entry points are:

- :class:`CredentialManager` -- decides per invocation whether to reuse,
  refresh, or re-acquire the bearer credential.
- :class:`CredentialStore` -- the single JSON credentials file.
- :func:`login` -- the interactive browser login with PKCE.
- :class:`OIDCClient` -- discovery, code exchange, and refresh against the issuer.
- :class:`CallbackReceiver` -- one-shot loopback listener for the redirect.

Typical usage::

    from cloudctl.auth import CredentialManager

    outcome = CredentialManager(settings).ensure_auth()
    # outcome.access_token is ready to use as a bearer token.
"""

from cloudctl.auth.callback import CallbackReceiver
from cloudctl.auth.credential_store import CredentialStore
from cloudctl.auth.lifecycle import (
    AuthOutcome,
    CacheExpired,
    CacheFatal,
    CacheHit,
    CredentialManager,
    CredentialSource,
    CredentialState,
    NeedsLogin,
)
from cloudctl.auth.login import DEFAULT_SCOPES, login
from cloudctl.auth.oidc import OIDCClient
from cloudctl.auth.pkce import generate_pkce

__all__ = [
    "AuthOutcome",
    "CacheExpired",
    "CacheFatal",
    "CacheHit",
    "CallbackReceiver",
    "CredentialManager",
    "CredentialSource",
    "CredentialState",
    "CredentialStore",
    "DEFAULT_SCOPES",
    "NeedsLogin",
    "OIDCClient",
    "generate_pkce",
    "login",
]
