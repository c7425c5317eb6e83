"""Synchronous client for the cloud API.

:class:`ApiClient` wraps :class:`httpx.Client` with bearer-token injection
and maps HTTP failures onto the :mod:`cloudctl.exceptions` hierarchy. The
credential lifecycle only needs one call from it,
:meth:`ApiClient.get_current_user`, to tag a freshly obtained token with the
identity of its owner.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from cloudctl.exceptions import AuthError, CloudctlError, ConnectionError_, NotFoundError, ServerError
from cloudctl.models import AuthSettings, CurrentUser
from cloudctl.output import debug

CURRENT_USER_PATH = "/users/me"


class ApiClient:
    """HTTP client for the cloud API, authorized with one bearer token.

    Must be used as a context manager (or closed explicitly) so that the
    underlying transport is released.

    Args:
        api_host: Base URL of the API, e.g. ``https://console.cloudctl.dev/api/v2``.
        api_key: Access token or API key sent as ``Authorization: Bearer``.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use :class:`httpx.MockTransport`).

    Example::

        with ApiClient.from_settings(settings, token) as client:
            user = client.get_current_user()
    """

    def __init__(
        self,
        api_host: str,
        api_key: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=api_host.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {api_key}",
            },
        )

    @classmethod
    def from_settings(
        cls,
        settings: AuthSettings,
        api_key: str,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> ApiClient:
        return cls(settings.api_host, api_key, timeout=settings.timeout, transport=transport)

    def __enter__(self) -> ApiClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request and raise on any non-2xx status.

        Raises:
            AuthError: On 401 / 403.
            NotFoundError: On 404.
            ServerError: On 5xx.
            ConnectionError_: On network / timeout errors.
            CloudctlError: On any other 4xx.
        """
        debug(f"{method.upper()} {path}")
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise ConnectionError_(f"Request timed out: {method.upper()} {path}") from exc
        except httpx.HTTPError as exc:
            raise ConnectionError_(f"Connection failed: {exc}") from exc

        self._map_response_error(response)
        return response

    def get_current_user(self) -> CurrentUser:
        """Return the user the bearer token belongs to.

        Raises:
            CloudctlError: Any of the :meth:`request` errors, or a generic
                error if the body has no usable ``id``.
        """
        response = self.request("GET", CURRENT_USER_PATH)
        try:
            return CurrentUser.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise CloudctlError(f"Unexpected response from {CURRENT_USER_PATH}: {exc}") from exc

    @staticmethod
    def _map_response_error(response: httpx.Response) -> None:
        """Raise the matching exception for HTTP error status codes."""
        status = response.status_code
        if status < 400:
            return
        if status in (401, 403):
            raise AuthError(f"Authentication failed (HTTP {status}): {response.text[:200]}")
        if status == 404:
            raise NotFoundError(f"Not found (HTTP 404): {response.request.url.path}")
        if status >= 500:
            raise ServerError(f"Server error (HTTP {status}): {response.text[:200]}")
        raise CloudctlError(f"Request failed (HTTP {status}): {response.text[:200]}")
