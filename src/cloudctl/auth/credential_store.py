"""Persistent credential store -- a single JSON file in the config directory.

The file lives at ``<config_dir>/credentials.json`` and holds one
:class:`~cloudctl.models.StoredCredential`: the token set returned by the
OIDC server plus the ``user_id`` it belongs to. Writes go through
:func:`~cloudctl.config.atomic_write` with ``0o700`` permissions applied to
the temp file before any content lands, so the secret is never readable by
other users and a reader never sees a half-written file.

A credential is only written once the identity lookup made with the fresh
access token has succeeded. Tokens are never logged; an MD5 fingerprint of
the file contents is logged at debug level instead, which is enough to tell
two versions of the file apart when diagnosing corruption.

See Also:
    :class:`~cloudctl.auth.lifecycle.CredentialManager` -- decides when to
    load and when to save.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

from pydantic import ValidationError

from cloudctl.client import ApiClient
from cloudctl.config import atomic_write, credentials_path
from cloudctl.exceptions import (
    CloudctlError,
    CorruptCredentialError,
    CredentialIOError,
    CredentialNotFoundError,
    IdentityLookupError,
)
from cloudctl.models import StoredCredential, TokenSet
from cloudctl.output import debug, info

CREDENTIALS_MODE = 0o700


def fingerprint(contents: str) -> str:
    """Return the MD5 hex digest of *contents*; safe to log, unlike the tokens."""
    return hashlib.md5(contents.encode("utf-8")).hexdigest()


class CredentialStore:
    """Read and replace the credentials file.

    Args:
        path: Location of the credentials file.

    Example::

        store = CredentialStore.for_config_dir(settings.config_dir)
        with ApiClient.from_settings(settings, token_set.access_token) as api:
            store.save(token_set, api)
        credential = store.load()
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @classmethod
    def for_config_dir(cls, config_dir: Path) -> CredentialStore:
        return cls(credentials_path(config_dir))

    @property
    def path(self) -> Path:
        """The filesystem path to the credentials file."""
        return self._path

    def save(self, token_set: TokenSet, api_client: ApiClient) -> StoredCredential:
        """Resolve the owning user and persist *token_set* with it.

        Args:
            token_set: Token set to store. Replaces the file wholesale.
            api_client: Client authorized with ``token_set.access_token``.

        Returns:
            The :class:`~cloudctl.models.StoredCredential` that was written.

        Raises:
            IdentityLookupError: If the current-user call fails. Nothing is
                written in that case.
            CredentialIOError: If the file cannot be written.
        """
        try:
            user = api_client.get_current_user()
        except CloudctlError as exc:
            raise IdentityLookupError(f"Failed to look up the current user: {exc}") from exc

        credential = StoredCredential.model_validate(
            {**token_set.token_fields(), "user_id": user.id}
        )
        contents = json.dumps(credential.token_fields())
        try:
            atomic_write(self._path, contents, mode=CREDENTIALS_MODE)
        except OSError as exc:
            raise CredentialIOError(f"Cannot write credentials file {self._path}: {exc}") from exc
        info(f"Saved credentials to {self._path}")
        debug(f"Credentials MD5 hash: {fingerprint(contents)}")
        return credential

    def load(self) -> StoredCredential:
        """Read and validate the credentials file.

        Returns:
            The stored credential.

        Raises:
            CredentialNotFoundError: If the file does not exist.
            CorruptCredentialError: If it is not valid JSON or not a credential.
            CredentialIOError: If it exists but cannot be read (permissions, I/O).
        """
        debug(f"Trying to read credentials from {self._path}")
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError as exc:
            raise CredentialNotFoundError(f"Credentials file {self._path} does not exist") from exc
        except OSError as exc:
            raise CredentialIOError(f"Cannot read credentials file {self._path}: {exc}") from exc

        digest = hashlib.md5(raw).hexdigest()
        debug(f"Credentials MD5 hash: {digest}")
        try:
            data = json.loads(raw.decode("utf-8"))
            return StoredCredential.model_validate(data)
        except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
            raise CorruptCredentialError(
                f"Credentials file {self._path} is corrupt (md5 {digest})"
            ) from exc
