"""Built-in CLI sub-commands for cloudctl.

This package groups the Typer command modules registered on the root app:

* :mod:`~cloudctl.commands.auth` -- ``auth`` (alias ``login``): browser login.
* :mod:`~cloudctl.commands.user` -- ``me``: show the authenticated user.
* :mod:`~cloudctl.commands.session` -- helpers shared by commands that need
  a credential.

The command modules export plain callback functions that :mod:`cloudctl.app`
registers on the root app at import time.
"""
