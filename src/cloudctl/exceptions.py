"""Exception hierarchy for cloudctl.

All exceptions inherit from :class:`CloudctlError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`cloudctl.exit_codes`
and a ``kind`` string naming the failure category. The top-level error
handler in :func:`cloudctl.app.main` catches ``CloudctlError`` and exits
with the appropriate code, while unexpected exceptions produce a crash log
and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    CloudctlError (exit 1)
    +-- InvalidUsageError           (exit 2)
    +-- ConfigError                 (exit 1)
    +-- AuthError                   (exit 3)
    |   +-- DiscoveryError
    |   +-- CallbackError
    |   |   +-- CallbackTimeoutError
    |   +-- ExchangeError
    |   +-- RefreshError
    |   +-- IdentityLookupError
    +-- CredentialError             (exit 1)
    |   +-- CredentialNotFoundError
    |   +-- CorruptCredentialError
    +-- CredentialIOError           (exit 9)
    +-- UnattendedContextError      (exit 8)
    +-- NotFoundError               (exit 4)
    +-- ServerError                 (exit 5)
    +-- ConnectionError_            (exit 6)
"""

from cloudctl.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_CREDENTIAL_IO,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_SERVER_ERROR,
    EXIT_UNATTENDED,
)


class CloudctlError(Exception):
    """Base exception for all cloudctl errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`cloudctl.exit_codes`, and a ``kind`` that names
    the failure category in a stable, machine-readable way. The entry point
    catches this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE
    kind: str = "ERROR"

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(CloudctlError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE
    kind = "INVALID_USAGE"


class ConfigError(CloudctlError):
    """Raised for configuration problems (unusable config directory, bad settings)."""

    exit_code = EXIT_GENERIC_FAILURE
    kind = "CONFIG"


# --- Authentication ---


class AuthError(CloudctlError):
    """Raised when authentication or authorisation fails (e.g. rejected token)."""

    exit_code = EXIT_AUTH_FAILURE
    kind = "AUTH_FAILED"


class DiscoveryError(AuthError):
    """Raised when the OIDC issuer metadata cannot be fetched or is incomplete."""

    kind = "DISCOVERY_FAILED"


class CallbackError(AuthError):
    """Raised when the browser redirect is missing, malformed, or carries a wrong ``state``."""

    kind = "CALLBACK_FAILED"


class CallbackTimeoutError(CallbackError):
    """Raised when no browser redirect arrives before the callback timeout."""

    kind = "TIMEOUT"


class ExchangeError(AuthError):
    """Raised when the authorization code cannot be exchanged for tokens."""

    kind = "EXCHANGE_FAILED"


class RefreshError(AuthError):
    """Raised when a refresh grant fails.

    The lifecycle manager recovers from this by running an interactive
    login, so it only reaches the user when the adapter is used directly.
    """

    kind = "REFRESH_FAILED"


class IdentityLookupError(AuthError):
    """Raised when the current user cannot be resolved with a fresh token."""

    kind = "IDENTITY_LOOKUP_FAILED"


# --- Credentials file ---


class CredentialError(CloudctlError):
    """Base class for credentials-file states that mean "log in again"."""

    exit_code = EXIT_GENERIC_FAILURE
    kind = "CREDENTIAL"


class CredentialNotFoundError(CredentialError):
    """Raised when the credentials file does not exist."""

    kind = "NOT_FOUND"


class CorruptCredentialError(CredentialError):
    """Raised when the credentials file is not valid JSON or not a credential."""

    kind = "CORRUPT"


class CredentialIOError(CloudctlError):
    """Raised when the credentials file exists but cannot be read.

    Unlike :class:`CredentialError`, this is not recovered by logging in
    again: a permission problem should be fixed, not papered over by a
    browser window.
    """

    exit_code = EXIT_CREDENTIAL_IO
    kind = "UNEXPECTED_IO"


class UnattendedContextError(CloudctlError):
    """Raised when an interactive login is needed in CI or without a TTY."""

    exit_code = EXIT_UNATTENDED
    kind = "UNATTENDED_CONTEXT_REFUSED"


# --- API responses ---


class NotFoundError(CloudctlError):
    """Raised when the API returns HTTP 404 (resource not found)."""

    exit_code = EXIT_NOT_FOUND
    kind = "API_NOT_FOUND"


class ServerError(CloudctlError):
    """Raised when the API returns an HTTP 5xx server error."""

    exit_code = EXIT_SERVER_ERROR
    kind = "SERVER_ERROR"


class ConnectionError_(CloudctlError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR
    kind = "CONNECTION_ERROR"
