"""Interactive OAuth2 authorization-code login with PKCE.

:func:`login` drives one browser login attempt end to end:

1. Discovers the issuer through :class:`~cloudctl.auth.oidc.OIDCClient`.
2. Starts a :class:`~cloudctl.auth.callback.CallbackReceiver` on an
   ephemeral loopback port.
3. Generates a fresh :class:`~cloudctl.models.PKCEContext`.
4. Opens the user's browser at the authorization URL.
5. Waits for the redirect and checks ``state``.
6. Exchanges the code and verifier for a :class:`~cloudctl.models.TokenSet`.

The flow is not re-entrant; callers run at most one attempt at a time.
"""

from __future__ import annotations

import webbrowser
from typing import Callable, Optional

from cloudctl.auth.callback import CallbackReceiver
from cloudctl.auth.oidc import OIDCClient
from cloudctl.auth.pkce import generate_pkce
from cloudctl.exceptions import CallbackError
from cloudctl.models import AuthSettings, CallbackParams, PKCEContext, TokenSet
from cloudctl.output import debug, info, warning

# These scopes cannot be dropped, the CLI always needs them.
DEFAULT_SCOPES = [
    "openid",
    "offline",
    "offline_access",
    "urn:cloudctl:projects:create",
    "urn:cloudctl:projects:read",
    "urn:cloudctl:projects:modify",
    "urn:cloudctl:projects:delete",
]

BrowserOpener = Callable[[str], bool]


def login(
    settings: AuthSettings,
    oidc: Optional[OIDCClient] = None,
    open_browser: BrowserOpener = webbrowser.open,
) -> TokenSet:
    """Run the interactive browser login and return the new token set.

    Args:
        settings: Resolved settings (issuer, client id, timeouts).
        oidc: Adapter to use. A new one is created and closed when omitted.
        open_browser: Callable that opens a URL and returns ``False`` when
            no browser could be launched. Defaults to :func:`webbrowser.open`.

    Returns:
        The :class:`~cloudctl.models.TokenSet` issued for the authorization code.

    Raises:
        DiscoveryError: If the issuer metadata cannot be fetched.
        CallbackError: If the redirect times out, reports an error, lacks a
            code, or carries a mismatched ``state``.
        ExchangeError: If the code cannot be exchanged for tokens.
    """
    if oidc is None:
        with OIDCClient(settings) as owned:
            return _run(settings, owned, open_browser)
    return _run(settings, oidc, open_browser)


def _run(settings: AuthSettings, oidc: OIDCClient, open_browser: BrowserOpener) -> TokenSet:
    info("Discovering OAuth server")
    metadata = oidc.discover()

    with CallbackReceiver() as receiver:
        redirect_uri = receiver.redirect_uri
        pkce = generate_pkce()
        auth_url = oidc.authorization_url(metadata, redirect_uri, pkce, DEFAULT_SCOPES)

        _launch_browser(open_browser, auth_url)
        info("Waiting for the browser to complete authentication...")
        params = receiver.wait(settings.callback_timeout)

    code = _verify_callback(params, pkce)
    debug("Exchanging authorization code for tokens")
    return oidc.exchange_code(metadata, code, redirect_uri, pkce.code_verifier)


def _launch_browser(open_browser: BrowserOpener, url: str) -> None:
    """Open *url*; if that fails, print it so the user can open it by hand."""
    try:
        opened = open_browser(url)
    except webbrowser.Error as exc:
        debug(f"Browser launch raised: {exc}")
        opened = False
    if not opened:
        warning("Could not open a browser automatically.")
        info(f"Open this URL to continue:\n{url}")


def _verify_callback(params: CallbackParams, pkce: PKCEContext) -> str:
    """Return the authorization code, or raise if the callback is unusable."""
    if params.error:
        message = f"Authorization failed: {params.error}"
        if params.error_description:
            message += f" - {params.error_description}"
        raise CallbackError(message)
    if params.state != pkce.state:
        raise CallbackError("State mismatch in authorization callback")
    if not params.code:
        raise CallbackError("No authorization code received from callback")
    return params.code
