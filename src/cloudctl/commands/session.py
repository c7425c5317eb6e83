"""Per-invocation session helpers shared by commands.

The root callback stores the resolved :class:`~cloudctl.models.AuthSettings`
and the global auth flags in ``ctx.obj``. Commands call :func:`require_auth`
to run the credential lifecycle before touching the API.

``ctx.obj`` may also carry a pre-built ``"manager"`` or an
``"api_client_factory"``; tests use this to point the CLI at stub servers.
"""

from __future__ import annotations

from typing import Any

import typer

from cloudctl.auth.lifecycle import ApiClientFactory, AuthOutcome, CredentialManager
from cloudctl.client import ApiClient
from cloudctl.exceptions import CloudctlError, UnattendedContextError
from cloudctl.models import AuthSettings
from cloudctl.output import error, suggest


def _obj(ctx: typer.Context) -> dict[str, Any]:
    root = ctx.find_root()
    root.ensure_object(dict)
    return root.obj


def get_settings(ctx: typer.Context) -> AuthSettings:
    return _obj(ctx)["settings"]


def get_manager(ctx: typer.Context) -> CredentialManager:
    """Return the invocation's :class:`CredentialManager`, building it once."""
    obj = _obj(ctx)
    manager = obj.get("manager")
    if manager is None:
        manager = CredentialManager(
            get_settings(ctx),
            api_client_factory=get_api_client_factory(ctx),
        )
        obj["manager"] = manager
    return manager


def get_api_client_factory(ctx: typer.Context) -> ApiClientFactory:
    return _obj(ctx).get("api_client_factory", ApiClient.from_settings)


def fail(exc: CloudctlError) -> typer.Exit:
    """Report *exc* on stderr and return the matching :class:`typer.Exit`."""
    error(str(exc))
    if isinstance(exc, UnattendedContextError):
        suggest("Set CLOUDCTL_API_KEY for unattended use.")
    return typer.Exit(code=exc.exit_code)


def require_auth(ctx: typer.Context) -> AuthOutcome:
    """Ensure a credential is available, exiting non-zero if that fails."""
    obj = _obj(ctx)
    try:
        return get_manager(ctx).ensure_auth(
            api_key=obj.get("api_key"),
            force_interactive=obj.get("force_auth", False),
        )
    except CloudctlError as exc:
        raise fail(exc) from None
