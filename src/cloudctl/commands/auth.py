"""Auth command -- log in through the browser and cache the credential.

Registered on the root app as ``cloudctl auth`` with the alias
``cloudctl login``. It always runs the interactive flow, even when a valid
credential is already cached, and overwrites the credentials file::

    cloudctl auth                # open the browser, save credentials
    CI=true cloudctl --force-auth auth   # same, in a CI shell
"""

from __future__ import annotations

import typer

from cloudctl.commands.session import fail, get_manager
from cloudctl.exceptions import CloudctlError
from cloudctl.output import debug, suggest


def auth_command(ctx: typer.Context) -> None:
    """Authenticate with the cloud API in your browser.

    Raises:
        typer.Exit: With the error's exit code if discovery, the callback,
            the code exchange, or the identity lookup fails, or if the
            session is unattended and ``--force-auth`` was not given.
    """
    obj = ctx.find_root().obj or {}
    manager = get_manager(ctx)
    try:
        outcome = manager.login(force_interactive=obj.get("force_auth", False))
    except CloudctlError as exc:
        raise fail(exc) from None

    debug(f"Authenticated as user {outcome.user_id}")
    suggest("Check it: cloudctl me")
