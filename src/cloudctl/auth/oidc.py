"""OIDC client adapter -- discovery, authorization URL, code exchange, refresh.

:class:`OIDCClient` is a thin wrapper over :class:`httpx.Client` that speaks
just enough OpenID Connect for a public CLI client:

1. Fetches the provider's discovery document from
   ``<oauth_host>/.well-known/openid-configuration``.
2. Builds the authorization URL with the PKCE challenge and ``state``.
3. Exchanges the authorization code plus ``code_verifier`` for a
   :class:`~cloudctl.models.TokenSet`.
4. Trades a refresh token for a new :class:`~cloudctl.models.TokenSet`.

The client authenticates as a public client (``client_id`` in the form body,
no secret). Timeouts come from the :class:`~cloudctl.models.AuthSettings`
passed at construction; there are no process-wide HTTP defaults.

See Also:
    :mod:`cloudctl.auth.login` for the interactive flow built on top.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx
from pydantic import ValidationError

from cloudctl.exceptions import DiscoveryError, ExchangeError, RefreshError
from cloudctl.models import AuthSettings, IssuerMetadata, PKCEContext, TokenSet

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/openid-configuration"


def discovery_url(oauth_host: str) -> str:
    """Return the discovery document URL for *oauth_host*.

    Hosts that already point at a ``/.well-known/`` document are used as-is.
    """
    if "/.well-known/" in oauth_host:
        return oauth_host
    return oauth_host.rstrip("/") + DISCOVERY_PATH


class OIDCClient:
    """Public OIDC client for one issuer.

    Must be closed after use; prefer the context-manager form so the
    underlying connection pool is released.

    Args:
        settings: Resolved settings supplying ``oauth_host``, ``client_id``
            and ``timeout``.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            for a stub issuer in tests.

    Example::

        with OIDCClient(settings) as oidc:
            metadata = oidc.discover()
            url = oidc.authorization_url(metadata, redirect_uri, pkce, scopes)
    """

    def __init__(
        self,
        settings: AuthSettings,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._client = httpx.Client(
            timeout=settings.timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._metadata: Optional[IssuerMetadata] = None

    @property
    def client_id(self) -> str:
        return self._settings.client_id

    def __enter__(self) -> OIDCClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------ #
    # Discovery
    # ------------------------------------------------------------------ #

    def discover(self) -> IssuerMetadata:
        """Fetch and validate the issuer's discovery document.

        The result is cached for the lifetime of the client.

        Returns:
            The parsed :class:`~cloudctl.models.IssuerMetadata`.

        Raises:
            DiscoveryError: If the document cannot be fetched, is not JSON,
                or lacks ``authorization_endpoint`` / ``token_endpoint``.
        """
        if self._metadata is not None:
            return self._metadata

        url = discovery_url(self._settings.oauth_host)
        logger.debug("Discovering OIDC issuer at %s", url)
        try:
            response = self._client.get(url)
            response.raise_for_status()
            doc = response.json()
        except httpx.HTTPStatusError as exc:
            raise DiscoveryError(
                f"OIDC discovery failed with status {exc.response.status_code} at {url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise DiscoveryError(f"OIDC discovery failed: {exc}") from exc
        except ValueError as exc:
            raise DiscoveryError(f"OIDC discovery document at {url} is not JSON") from exc

        if not isinstance(doc, dict):
            raise DiscoveryError(f"OIDC discovery document at {url} is not an object")
        for field in ("authorization_endpoint", "token_endpoint"):
            if not doc.get(field):
                raise DiscoveryError(f"OIDC discovery document missing '{field}'")

        try:
            self._metadata = IssuerMetadata.model_validate(doc)
        except ValidationError as exc:
            raise DiscoveryError(f"Invalid OIDC discovery document: {exc}") from exc
        return self._metadata

    # ------------------------------------------------------------------ #
    # Authorization request
    # ------------------------------------------------------------------ #

    def authorization_url(
        self,
        metadata: IssuerMetadata,
        redirect_uri: str,
        pkce: PKCEContext,
        scopes: list[str],
    ) -> str:
        """Build the URL the user's browser is sent to.

        Query parameters already present on the authorization endpoint are
        kept; the OAuth parameters are appended after them.
        """
        parsed = urlparse(metadata.authorization_endpoint)
        query = parse_qsl(parsed.query, keep_blank_values=True)
        query.extend(
            [
                ("client_id", self.client_id),
                ("response_type", "code"),
                ("redirect_uri", redirect_uri),
                ("scope", " ".join(scopes)),
                ("state", pkce.state),
                ("code_challenge", pkce.code_challenge),
                ("code_challenge_method", "S256"),
            ]
        )
        return urlunparse(parsed._replace(query=urlencode(query)))

    # ------------------------------------------------------------------ #
    # Token endpoint
    # ------------------------------------------------------------------ #

    def exchange_code(
        self,
        metadata: IssuerMetadata,
        code: str,
        redirect_uri: str,
        code_verifier: str,
    ) -> TokenSet:
        """Exchange an authorization code for a token set.

        Raises:
            ExchangeError: On transport errors, non-2xx responses, or a
                response without ``access_token``.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "code_verifier": code_verifier,
            "client_id": self.client_id,
        }
        try:
            token_data = self._post_token(metadata.token_endpoint, data)
        except httpx.HTTPStatusError as exc:
            raise ExchangeError(
                f"Token exchange failed with status {exc.response.status_code}: "
                f"{_oauth_error(exc.response)}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExchangeError(f"Token exchange failed: {exc}") from exc
        except ValueError as exc:
            raise ExchangeError("Token exchange response is not JSON") from exc

        if "access_token" not in token_data:
            raise ExchangeError("Token response missing 'access_token' field")
        return TokenSet.from_response(token_data)

    def refresh(self, metadata: IssuerMetadata, token_set: TokenSet) -> TokenSet:
        """Trade ``token_set.refresh_token`` for a new token set.

        The returned set is exactly what the token endpoint sent back;
        nothing is copied over from *token_set*.

        Raises:
            RefreshError: If there is no refresh token or the grant fails.
        """
        if not token_set.refresh_token:
            raise RefreshError("No refresh token available")

        data = {
            "grant_type": "refresh_token",
            "refresh_token": token_set.refresh_token,
            "client_id": self.client_id,
        }
        try:
            token_data = self._post_token(metadata.token_endpoint, data)
        except httpx.HTTPStatusError as exc:
            raise RefreshError(
                f"Token refresh failed with status {exc.response.status_code}: "
                f"{_oauth_error(exc.response)}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RefreshError(f"Token refresh failed: {exc}") from exc
        except ValueError as exc:
            raise RefreshError("Token refresh response is not JSON") from exc

        if "access_token" not in token_data:
            raise RefreshError("Token refresh response missing 'access_token' field")
        return TokenSet.from_response(token_data)

    def _post_token(self, token_endpoint: str, data: dict[str, str]) -> dict[str, Any]:
        logger.debug("POST %s (grant_type=%s)", token_endpoint, data["grant_type"])
        response = self._client.post(token_endpoint, data=data)
        response.raise_for_status()
        token_data = response.json()
        if not isinstance(token_data, dict):
            raise ValueError("token response is not an object")
        return token_data


def _oauth_error(response: httpx.Response) -> str:
    """Return the OAuth ``error``/``error_description`` of a failed response.

    Falls back to the raw body. Token endpoints never echo tokens in error
    bodies, so this is safe to show.
    """
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "error" in body:
        description = body.get("error_description")
        return f"{body['error']} ({description})" if description else str(body["error"])
    return response.text
