"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for cloudctl:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.cloudctl/`` on macOS and Windows. See :func:`get_config_dir`.
* **Settings resolution** -- :func:`resolve_settings` merges CLI flags,
  environment variables, and built-in defaults into one
  :class:`~cloudctl.models.AuthSettings`.
* **Unattended detection** -- :func:`is_unattended` reports whether the
  process runs in CI or without an interactive terminal, in which case no
  browser login may be started.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) so that a reader never observes a partial file.
"""

from __future__ import annotations

import os
import platform
import sys
import tempfile
from pathlib import Path
from typing import Optional

from cloudctl.exceptions import ConfigError
from cloudctl.models import AuthSettings

_APP_NAME = "cloudctl"

CREDENTIALS_FILE = "credentials.json"
"""Name of the credentials file inside the config directory."""

DEFAULT_OAUTH_HOST = "https://oauth2.cloudctl.dev"
DEFAULT_CLIENT_ID = "cloudctl"
DEFAULT_API_HOST = "https://console.cloudctl.dev/api/v2"
DEFAULT_TIMEOUT = 10.0
DEFAULT_CALLBACK_TIMEOUT = 300.0

ENV_CONFIG_DIR = "CLOUDCTL_CONFIG_DIR"
ENV_OAUTH_HOST = "CLOUDCTL_OAUTH_HOST"
ENV_CLIENT_ID = "CLOUDCTL_CLIENT_ID"
ENV_API_HOST = "CLOUDCTL_API_HOST"
ENV_API_KEY = "CLOUDCTL_API_KEY"
ENV_TIMEOUT = "CLOUDCTL_TIMEOUT"
ENV_CALLBACK_TIMEOUT = "CLOUDCTL_CALLBACK_TIMEOUT"

# Variables set by common CI providers. ``CI`` covers most of them.
_CI_ENV_VARS = (
    "CI",
    "GITHUB_ACTIONS",
    "GITLAB_CI",
    "BUILDKITE",
    "CIRCLECI",
    "JENKINS_URL",
    "TF_BUILD",
    "TEAMCITY_VERSION",
)


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def get_config_dir() -> Path:
    """Return the default configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/cloudctl/`` (default ``~/.config/cloudctl/``).
    On macOS/Windows: ``~/.cloudctl/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        env_value = os.environ.get("XDG_CONFIG_HOME", "")
        base = Path(env_value) if env_value else Path.home() / ".config"
        path = base / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def credentials_path(config_dir: Path) -> Path:
    """Return the credentials file location inside *config_dir*."""
    return config_dir / CREDENTIALS_FILE


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    When *mode* is given it is applied to the temp file before any content
    is written, so secrets are never exposed with looser permissions.
    On any failure the temp file is cleaned up.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in the error path
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Precedence resolution ---


def _pick(cli_value: Optional[str], env_var: str, default: str) -> str:
    """Return the CLI value, else the env var, else *default*."""
    if cli_value:
        return cli_value
    env_value = os.environ.get(env_var)
    if env_value:
        return env_value
    return default


def _pick_float(env_var: str, default: float) -> float:
    raw = os.environ.get(env_var)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{env_var} must be a number of seconds, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{env_var} must be positive, got {raw!r}")
    return value


def resolve_settings(
    config_dir: Optional[Path] = None,
    oauth_host: Optional[str] = None,
    client_id: Optional[str] = None,
    api_host: Optional[str] = None,
) -> AuthSettings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. Explicit arguments (CLI flags)
        2. Environment variables (``CLOUDCTL_CONFIG_DIR``, ``CLOUDCTL_OAUTH_HOST``,
           ``CLOUDCTL_CLIENT_ID``, ``CLOUDCTL_API_HOST``, ``CLOUDCTL_TIMEOUT``,
           ``CLOUDCTL_CALLBACK_TIMEOUT``)
        3. Defaults

    Returns:
        The effective :class:`~cloudctl.models.AuthSettings`.

    Raises:
        ConfigError: If the config directory cannot be created or a
            timeout variable is not a positive number.
    """
    if config_dir is not None:
        resolved_dir = config_dir.expanduser()
    elif os.environ.get(ENV_CONFIG_DIR):
        resolved_dir = Path(os.environ[ENV_CONFIG_DIR]).expanduser()
    else:
        resolved_dir = get_config_dir()

    try:
        resolved_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ConfigError(f"Cannot create config directory {resolved_dir}: {exc}") from exc

    return AuthSettings(
        config_dir=resolved_dir,
        oauth_host=_pick(oauth_host, ENV_OAUTH_HOST, DEFAULT_OAUTH_HOST),
        client_id=_pick(client_id, ENV_CLIENT_ID, DEFAULT_CLIENT_ID),
        api_host=_pick(api_host, ENV_API_HOST, DEFAULT_API_HOST),
        timeout=_pick_float(ENV_TIMEOUT, DEFAULT_TIMEOUT),
        callback_timeout=_pick_float(ENV_CALLBACK_TIMEOUT, DEFAULT_CALLBACK_TIMEOUT),
    )


def resolve_api_key(cli_value: Optional[str] = None) -> Optional[str]:
    """Return the explicit API key from the CLI flag or ``CLOUDCTL_API_KEY``."""
    if cli_value:
        return cli_value
    return os.environ.get(ENV_API_KEY) or None


# --- Execution context ---


def _env_flag(name: str) -> bool:
    value = os.environ.get(name)
    if value is None:
        return False
    return value.strip().lower() not in ("", "0", "false", "no")


def is_unattended() -> bool:
    """Return ``True`` when no interactive browser session is possible.

    That is the case when a CI provider variable is set, or when stdin is
    not attached to a terminal.
    """
    if any(_env_flag(name) for name in _CI_ENV_VARS):
        return True
    return not (hasattr(sys.stdin, "isatty") and sys.stdin.isatty())
