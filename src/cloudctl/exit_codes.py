"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~cloudctl.exceptions.CloudctlError` subclass.
Shell wrappers and CI scripts can inspect the exit code to tell a rejected
login apart from a broken credentials file without parsing stderr.

Example::

    $ CI=true cloudctl me
    $ echo $?
    8   # EXIT_UNATTENDED -- refused to open a browser in CI
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication failed (discovery, callback, code exchange, or identity lookup)."""

EXIT_NOT_FOUND = 4
"""The requested resource was not found (HTTP 404)."""

EXIT_SERVER_ERROR = 5
"""The remote API returned an HTTP 5xx server error."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_UNATTENDED = 8
"""An interactive login was required but the session is unattended (CI, no TTY)."""

EXIT_CREDENTIAL_IO = 9
"""The credentials file exists but could not be read (permissions, I/O)."""
