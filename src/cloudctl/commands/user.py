"""User command -- show the user the current credential belongs to."""

from __future__ import annotations

import typer

from cloudctl.commands.session import fail, get_api_client_factory, get_settings, require_auth
from cloudctl.exceptions import CloudctlError
from cloudctl.output import format_response


def me_command(ctx: typer.Context) -> None:
    """Show the authenticated user.

    Runs the credential lifecycle first (cached token, refresh, or browser
    login), then calls the identity endpoint with the resulting token.
    """
    outcome = require_auth(ctx)
    factory = get_api_client_factory(ctx)
    try:
        with factory(get_settings(ctx), outcome.access_token) as api:
            user = api.get_current_user()
    except CloudctlError as exc:
        raise fail(exc) from None
    format_response(user.model_dump(mode="json", exclude_none=True))
