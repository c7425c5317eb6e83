"""Canonical Pydantic models shared across all cloudctl modules.

This is the single source of truth for data shapes in the project. The
models fall into three groups:

**Settings** -- :class:`AuthSettings`, the explicit configuration value
threaded into every component that talks to the network.

**OAuth/OIDC artifacts** -- :class:`TokenSet`, :class:`StoredCredential`,
:class:`PKCEContext`, :class:`IssuerMetadata`, and :class:`CallbackParams`.

**API payloads** -- :class:`CurrentUser`.

Models mirroring server payloads use ``extra="allow"`` so that fields the
server adds are kept when a token set is written to disk and read back.
"""

from __future__ import annotations

import math
import time
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- Settings ---


class AuthSettings(BaseModel):
    """Resolved connection settings for one CLI invocation.

    Built once by :func:`~cloudctl.config.resolve_settings` and passed to
    :class:`~cloudctl.auth.oidc.OIDCClient`,
    :class:`~cloudctl.client.ApiClient`, and
    :class:`~cloudctl.auth.lifecycle.CredentialManager`. Nothing reads
    timeouts or hosts from module-level state.

    Example::

        AuthSettings(
            config_dir=Path("~/.config/cloudctl").expanduser(),
            oauth_host="https://oauth2.cloudctl.dev",
            client_id="cloudctl",
            api_host="https://api.cloudctl.dev/api/v2",
        )
    """

    config_dir: Path = Field(description="Directory holding the credentials file")
    oauth_host: str = Field(description="OIDC issuer URL used for discovery")
    client_id: str = Field(description="Public OAuth client identifier")
    api_host: str = Field(description="Base URL of the cloud API")
    timeout: float = Field(
        default=10.0,
        description="Timeout in seconds for OIDC and API HTTP calls",
    )
    callback_timeout: float = Field(
        default=300.0,
        description="Seconds to wait for the browser to hit the loopback callback",
    )


# --- OAuth/OIDC ---


class TokenSet(BaseModel):
    """Bundle of tokens and metadata returned by an OIDC token endpoint.

    ``expires_at`` is an absolute UNIX timestamp in seconds. Token endpoint
    responses carry a relative ``expires_in`` instead; use
    :meth:`from_response` to convert. A refresh produces a brand new
    instance, fields are never merged from the previous one.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None
    expires_at: Optional[int] = Field(
        default=None,
        description="Expiry as UNIX seconds (None = never expires)",
    )

    @field_validator("expires_at", mode="before")
    @classmethod
    def _floor_expiry(cls, value: Any) -> Any:
        # Other clients may have written fractional timestamps.
        if isinstance(value, float) and math.isfinite(value):
            return math.floor(value)
        return value

    @classmethod
    def from_response(cls, data: dict[str, Any], now: Optional[float] = None) -> TokenSet:
        """Build a token set from a raw token endpoint JSON response.

        Args:
            data: The decoded JSON body. Must contain ``access_token``.
            now: Current UNIX time, defaults to :func:`time.time`.

        Returns:
            A new :class:`TokenSet` with ``expires_in`` turned into
            ``expires_at``.
        """
        payload = dict(data)
        expires_in = payload.pop("expires_in", None)
        if expires_in is not None and payload.get("expires_at") is None:
            current = time.time() if now is None else now
            payload["expires_at"] = int(current + float(expires_in))
        return cls.model_validate(payload)

    def expired(self, now: Optional[float] = None) -> bool:
        """Return ``True`` when ``expires_at`` is set and not in the future."""
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return self.expires_at <= current

    def token_fields(self) -> dict[str, Any]:
        """Return the token set as a JSON-ready dict without unset fields."""
        return self.model_dump(mode="json", exclude_none=True)


class StoredCredential(TokenSet):
    """A :class:`TokenSet` as persisted on disk, tagged with the owning user."""

    user_id: str

    def to_token_set(self) -> TokenSet:
        """Strip ``user_id`` and return the bare token set."""
        data = self.token_fields()
        data.pop("user_id", None)
        return TokenSet.model_validate(data)


class PKCEContext(BaseModel):
    """Per-attempt PKCE parameters, held only in memory.

    ``code_challenge`` is the unpadded base64url SHA-256 digest of
    ``code_verifier`` (:rfc:`7636` ``S256``). ``state`` must come back
    unchanged on the callback.
    """

    model_config = ConfigDict(frozen=True)

    state: str
    code_verifier: str
    code_challenge: str


class IssuerMetadata(BaseModel):
    """Subset of an OpenID Provider discovery document."""

    model_config = ConfigDict(extra="allow")

    issuer: Optional[str] = None
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: Optional[str] = None


class CallbackParams(BaseModel):
    """OAuth response parameters parsed from the loopback callback query."""

    model_config = ConfigDict(extra="allow")

    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None


# --- API payloads ---


class CurrentUser(BaseModel):
    """The authenticated user as reported by the identity endpoint."""

    model_config = ConfigDict(extra="allow")

    id: str
    email: Optional[str] = None
    name: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        # Some deployments return numeric ids.
        if isinstance(value, int):
            return str(value)
        return value
