"""Terminal output for cloudctl.

Data (the ``me`` payload) goes to stdout; everything else, from progress
notes to errors, goes to stderr so that ``cloudctl me --json | jq`` stays
parseable. Colour is dropped for ``--no-color``, ``NO_COLOR`` and
``TERM=dumb``.

Commands and library code call the module-level helpers (:func:`info`,
:func:`warning`, :func:`error`, ...), which forward to the
:class:`OutputManager` installed by :func:`~cloudctl.app.main_callback`.
Module loggers under ``cloudctl`` are attached to the same stderr console by
:func:`configure_logging`.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.text import Text


class OutputFormat(str, Enum):
    """How :meth:`OutputManager.format_response` renders data.

    ``AUTO`` picks ``RICH`` on a colour-capable terminal, ``PLAIN`` otherwise.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


class OutputManager:
    """Routes data to stdout and diagnostics to stderr.

    Args:
        format: Rendering for data output.
        no_color: Print diagnostics without styling.
        quiet: Hide ``info``, ``success`` and ``suggest`` messages.
            Warnings and errors are always shown.
        verbose: Show ``debug`` messages.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        if format == OutputFormat.AUTO:
            format = OutputFormat.PLAIN if self._no_color or not _is_tty() else OutputFormat.RICH
        self._format = format
        self._stdout = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=format == OutputFormat.RICH,
        )
        self._stderr = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    @property
    def stderr_console(self) -> Console:
        """Console shared with the ``cloudctl`` log handler."""
        return self._stderr

    # --- stdout ---

    def format_response(self, data: Any) -> None:
        if self._format == OutputFormat.JSON:
            _print_stdout(json.dumps(data, indent=2, ensure_ascii=False, default=str))
        elif self._format == OutputFormat.RICH and isinstance(data, (dict, list)):
            rendered = json.dumps(data, indent=2, ensure_ascii=False, default=str)
            self._stdout.print(Syntax(rendered, "json", theme="monokai", word_wrap=True))
        elif isinstance(data, dict):
            for key, value in data.items():
                _print_stdout(f"{key}\t{value}")
        else:
            _print_stdout(str(data))

    # --- stderr ---

    def info(self, message: str) -> None:
        if not self._quiet:
            self._emit(message)

    def success(self, message: str) -> None:
        if not self._quiet:
            self._emit(message, style="green")

    def suggest(self, message: str) -> None:
        if not self._quiet:
            self._emit(f"→ {message}", style="dim")

    def warning(self, message: str) -> None:
        self._emit(message, label="Warning: ", label_style="yellow")

    def error(self, message: str) -> None:
        self._emit(message, label="Error: ", label_style="bold red")

    def debug(self, message: str) -> None:
        if self._verbose:
            self._emit(message, style="dim", label="[debug] ", label_style="dim")

    def _emit(
        self,
        message: str,
        style: str = "",
        label: str = "",
        label_style: str = "",
    ) -> None:
        # Messages are never parsed as markup; they may contain URLs and brackets.
        if self._no_color:
            print(f"{label}{message}", file=sys.stderr, flush=True)
            return
        text = Text.assemble((label, label_style), (message, style))
        self._stderr.print(text, highlight=False)


def _print_stdout(text: str) -> None:
    print(text, file=sys.stdout, flush=True)


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    return os.environ.get("NO_COLOR") is not None or os.environ.get("TERM") == "dumb"


def configure_logging(output: OutputManager) -> None:
    """Attach a :class:`RichHandler` for *output* to the ``cloudctl`` logger.

    The level is DEBUG with ``--verbose`` and WARNING otherwise. A handler
    installed by an earlier call is replaced.
    """
    logger = logging.getLogger("cloudctl")
    for handler in [h for h in logger.handlers if isinstance(h, RichHandler)]:
        logger.removeHandler(handler)
    logger.addHandler(
        RichHandler(console=output.stderr_console, show_time=False, show_path=False, markup=False)
    )
    logger.setLevel(logging.DEBUG if output.is_verbose else logging.WARNING)
    logger.propagate = False


# --- process-wide instance ---

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed :class:`OutputManager`, creating a default one."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Drop the installed manager; tests call this between runs."""
    global _output
    _output = None


def format_response(data: Any) -> None:
    get_output().format_response(data)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def warning(message: str) -> None:
    get_output().warning(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
