"""Typer application and CLI entry point for cloudctl.

This module wires together the top-level Typer application and registers the
built-in sub-commands (``auth`` with its ``login`` alias, and ``me``).

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers and invokes the Typer app.
Unhandled exceptions are written to a crash log under the config directory.

See Also:
    :mod:`cloudctl.config`: Settings resolution used by :func:`main_callback`.
    :mod:`cloudctl.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import typer

from cloudctl import __version__
from cloudctl.commands.auth import auth_command
from cloudctl.commands.user import me_command
from cloudctl.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="cloudctl",
    help="Command-line client for the cloud API.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("auth", help="Authenticate with the cloud API in your browser.")(auth_command)
app.command("login", hidden=True, help="Alias for 'auth'.")(auth_command)
app.command("me", help="Show the authenticated user.")(me_command)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"cloudctl {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    config_dir: Optional[Path] = typer.Option(
        None, "--config-dir", help="Directory holding credentials.json."
    ),
    oauth_host: Optional[str] = typer.Option(
        None, "--oauth-host", help="OAuth / OIDC issuer base URL."
    ),
    client_id: Optional[str] = typer.Option(
        None, "--client-id", help="OAuth client identifier."
    ),
    api_host: Optional[str] = typer.Option(
        None, "--api-host", help="Cloud API base URL."
    ),
    api_key: Optional[str] = typer.Option(
        None, "--api-key", help="Use this API key instead of the cached credential."
    ),
    force_auth: bool = typer.Option(
        False, "--force-auth", help="Allow browser login in CI or without a TTY."
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Initialises the global :class:`~cloudctl.output.OutputManager` and the
    ``cloudctl`` logger from CLI flags, resolves the effective
    :class:`~cloudctl.models.AuthSettings`, and stores them together with the
    auth flags in ``ctx.obj``. Keys already present in ``ctx.obj`` (such as
    a pre-built ``"manager"``) are left in place.

    Args:
        ctx: Typer invocation context.
        version: If ``True``, print the version string and exit.
        config_dir: Config directory override (highest precedence).
        oauth_host: Authorization server override.
        client_id: OAuth client id override.
        api_host: API base URL override.
        api_key: Explicit API key; falls back to ``CLOUDCTL_API_KEY``.
        force_auth: Permit an interactive login in unattended contexts.
        json_output: Force JSON output format.
        no_color: Disable all colour and Rich markup.
        quiet: Suppress non-essential diagnostic output.
        verbose: Enable debug-level diagnostic output.
    """
    from cloudctl.config import resolve_api_key, resolve_settings
    from cloudctl.exceptions import CloudctlError
    from cloudctl.output import OutputFormat, OutputManager, configure_logging, error, set_output

    output = OutputManager(
        format=OutputFormat.JSON if json_output else OutputFormat.AUTO,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)
    configure_logging(output)

    try:
        settings = resolve_settings(
            config_dir=config_dir,
            oauth_host=oauth_host,
            client_id=client_id,
            api_host=api_host,
        )
    except CloudctlError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["api_key"] = resolve_api_key(api_key)
    ctx.obj["force_auth"] = force_auth
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from cloudctl.config import get_config_dir

    logs_dir = get_config_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``cloudctl`` console script.

    Unhandled :class:`~cloudctl.exceptions.CloudctlError` instances cause a
    clean exit with the error's ``exit_code``. All other exceptions produce
    a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from cloudctl.exceptions import CloudctlError
        from cloudctl.output import error

        if isinstance(exc, CloudctlError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
