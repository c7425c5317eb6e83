"""Credential lifecycle -- reuse, refresh, or log in again.

:class:`CredentialManager` decides, from what is on disk, how the current
invocation gets its bearer token:

============================  ================  =====================================
Cache check                   Condition         Action
============================  ================  =====================================
explicit API key              always            use it, skip the file entirely
:class:`NeedsLogin`           missing/corrupt   interactive login, save
:class:`CacheHit`             not expired       use the stored ``access_token``
:class:`CacheExpired`         refresh succeeds  save the refreshed token set
:class:`CacheExpired`         refresh fails     interactive login, save
:class:`CacheFatal`           unreadable file   raise (no browser window)
============================  ================  =====================================

A failed refresh is not an error for the caller: it is logged and the
manager falls through to an interactive login. Interactive logins are
refused in unattended contexts (CI, no TTY) unless explicitly forced.

The credentials file is never locked. Two concurrent invocations may both
refresh and the last writer wins.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Union

from cloudctl.auth.credential_store import CredentialStore
from cloudctl.auth.login import login as interactive_login
from cloudctl.auth.oidc import OIDCClient
from cloudctl.client import ApiClient
from cloudctl.config import is_unattended
from cloudctl.exceptions import (
    CloudctlError,
    CorruptCredentialError,
    CredentialIOError,
    CredentialNotFoundError,
    DiscoveryError,
    RefreshError,
    UnattendedContextError,
)
from cloudctl.models import AuthSettings, StoredCredential, TokenSet
from cloudctl.output import debug, error, info, success, warning


class CredentialState(str, Enum):
    """States a credential passes through during one invocation."""

    NO_CREDENTIAL = "no_credential"
    VALID_CACHED = "valid_cached"
    EXPIRED_CACHED = "expired_cached"
    REFRESH_FAILED = "refresh_failed"
    AUTHENTICATED = "authenticated"


class CredentialSource(str, Enum):
    """Where the access token handed to the caller came from."""

    API_KEY = "api_key"
    CACHED = "cached"
    REFRESHED = "refreshed"
    LOGIN = "login"


# --- Cache check results ---


@dataclass(frozen=True)
class CacheHit:
    """The stored credential is present and not expired."""

    credential: StoredCredential


@dataclass(frozen=True)
class CacheExpired:
    """The stored credential parsed fine but has expired."""

    credential: StoredCredential


@dataclass(frozen=True)
class NeedsLogin:
    """There is no usable credential; an interactive login is required."""

    reason: str


@dataclass(frozen=True)
class CacheFatal:
    """The credentials file could not be read for reasons a login won't fix."""

    error: CloudctlError


CacheResult = Union[CacheHit, CacheExpired, NeedsLogin, CacheFatal]


@dataclass
class AuthOutcome:
    """Result of :meth:`CredentialManager.ensure_auth`.

    Attributes:
        access_token: Bearer token to authorize API calls with.
        source: How the token was obtained.
        states: Lifecycle states visited, ending in ``AUTHENTICATED``.
        user_id: Owner of a stored credential; ``None`` for explicit API keys.
    """

    access_token: str
    source: CredentialSource
    states: list[CredentialState] = field(default_factory=list)
    user_id: Optional[str] = None


OIDCFactory = Callable[[AuthSettings], OIDCClient]
ApiClientFactory = Callable[[AuthSettings, str], ApiClient]
LoginFlow = Callable[[AuthSettings, OIDCClient], TokenSet]


def _default_login_flow(settings: AuthSettings, oidc: OIDCClient) -> TokenSet:
    return interactive_login(settings, oidc)


class CredentialManager:
    """Guarantees a valid bearer credential before any API command runs.

    Args:
        settings: Resolved settings for this invocation.
        oidc_factory: Builds the OIDC adapter. Tests pass one bound to a
            stub issuer.
        api_client_factory: Builds the API client used for the identity
            lookup that precedes every save.
        login_flow: Runs the interactive browser login.
        unattended: Reports whether no browser session is possible.
        clock: Current UNIX time, used for expiry checks.
    """

    def __init__(
        self,
        settings: AuthSettings,
        oidc_factory: OIDCFactory = OIDCClient,
        api_client_factory: ApiClientFactory = ApiClient.from_settings,
        login_flow: LoginFlow = _default_login_flow,
        unattended: Callable[[], bool] = is_unattended,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._oidc_factory = oidc_factory
        self._api_client_factory = api_client_factory
        self._login_flow = login_flow
        self._unattended = unattended
        self._clock = clock
        self._store = CredentialStore.for_config_dir(settings.config_dir)

    @property
    def store(self) -> CredentialStore:
        return self._store

    def ensure_auth(
        self,
        api_key: Optional[str] = None,
        force_interactive: bool = False,
    ) -> AuthOutcome:
        """Return a usable access token, logging in or refreshing if needed.

        Args:
            api_key: Explicit key; when set, the credentials file is not
                touched at all.
            force_interactive: Allow a browser login even in an unattended
                context.

        Raises:
            CredentialIOError: If the credentials file exists but is unreadable.
            UnattendedContextError: If a login is needed but not allowed.
            DiscoveryError, CallbackError, ExchangeError: From the login flow.
            IdentityLookupError: If the new token cannot be tagged with a user.
        """
        if api_key:
            debug("Using an API key to authorize requests")
            return AuthOutcome(
                access_token=api_key,
                source=CredentialSource.API_KEY,
                states=[CredentialState.AUTHENTICATED],
            )

        result = self.check_cache()

        if isinstance(result, CacheFatal):
            raise result.error

        if isinstance(result, CacheHit):
            return AuthOutcome(
                access_token=result.credential.access_token,
                source=CredentialSource.CACHED,
                states=[CredentialState.VALID_CACHED, CredentialState.AUTHENTICATED],
                user_id=result.credential.user_id,
            )

        if isinstance(result, CacheExpired):
            states = [CredentialState.EXPIRED_CACHED]
            refreshed = self._try_refresh(result.credential)
            if refreshed is not None:
                credential = self._save(refreshed)
                states.append(CredentialState.AUTHENTICATED)
                return AuthOutcome(
                    access_token=credential.access_token,
                    source=CredentialSource.REFRESHED,
                    states=states,
                    user_id=credential.user_id,
                )
            states.append(CredentialState.REFRESH_FAILED)
        else:
            debug(f"{result.reason}, starting authentication")
            states = [CredentialState.NO_CREDENTIAL]

        outcome = self.login(force_interactive=force_interactive)
        outcome.states = states + outcome.states
        return outcome

    def login(self, force_interactive: bool = False) -> AuthOutcome:
        """Run the interactive login unconditionally and save the result.

        Raises:
            UnattendedContextError: In CI or without a TTY, unless
                *force_interactive* is set. Raised before any listener is
                bound or browser opened.
        """
        if not force_interactive and self._unattended():
            raise UnattendedContextError(
                "Cannot run interactive auth in an unattended context (CI or no TTY). "
                "Pass --api-key, or --force-auth to open a browser anyway."
            )

        with self._oidc_factory(self._settings) as oidc:
            token_set = self._login_flow(self._settings, oidc)
        credential = self._save(token_set)
        success("Auth complete")
        return AuthOutcome(
            access_token=credential.access_token,
            source=CredentialSource.LOGIN,
            states=[CredentialState.AUTHENTICATED],
            user_id=credential.user_id,
        )

    def check_cache(self) -> CacheResult:
        """Classify the credentials file without touching the network."""
        try:
            credential = self._store.load()
        except CredentialNotFoundError:
            return NeedsLogin(f"Credentials file {self._store.path} does not exist")
        except CorruptCredentialError as exc:
            warning(str(exc))
            return NeedsLogin("Stored credentials are unreadable")
        except CredentialIOError as exc:
            return CacheFatal(exc)

        if credential.expired(self._clock()):
            return CacheExpired(credential)
        return CacheHit(credential)

    def _try_refresh(self, credential: StoredCredential) -> Optional[TokenSet]:
        """Refresh *credential*, returning ``None`` when that is not possible."""
        debug("Using refresh token to update access token")
        try:
            with self._oidc_factory(self._settings) as oidc:
                metadata = oidc.discover()
                return oidc.refresh(metadata, credential.to_token_set())
        except (DiscoveryError, RefreshError) as exc:
            error(f"Failed to refresh token\n{exc}")
            info("Starting auth flow")
            return None

    def _save(self, token_set: TokenSet) -> StoredCredential:
        with self._api_client_factory(self._settings, token_set.access_token) as api:
            return self._store.save(token_set, api)
