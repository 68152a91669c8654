"""Terminal output for apix commands.

Data a command produces (profile lists, ``team show``, ``extensions list``)
goes to stdout; everything apix says *about* what it is doing goes to
stderr. An extension child inherits the terminal directly, so its own
output never passes through here.

The active :class:`OutputManager` is installed once per run by
:func:`~apix.app.main_callback`. Library code reports through the
module-level helpers (:func:`debug`, :func:`error`, ...), which may be
called from bridge worker threads while the main thread waits on the
extension.
"""

from __future__ import annotations

import json
import os
import sys
import threading
from enum import Enum
from typing import Any, Iterator, Optional

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table


class OutputFormat(str, Enum):
    """How command data is rendered on stdout.

    ``AUTO`` becomes ``RICH`` on a colour-capable terminal and ``PLAIN``
    everywhere else.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


# level -> (label printed before the message, rich style, hidden by --quiet)
_LEVELS: dict[str, tuple[str, str, bool]] = {
    "info": ("", "", True),
    "success": ("", "green", True),
    "suggest": ("→ ", "dim", True),
    "error": ("Error: ", "bold red", False),
    "debug": ("[debug] ", "dim", False),
}


class OutputManager:
    """Renders command data to stdout and diagnostics to stderr.

    Args:
        format: Data format; ``AUTO`` is resolved against the terminal.
        no_color: Never emit colour or styling.
        quiet: Drop info, success and suggestion lines.
        verbose: Show ``debug`` lines (bridge traffic, child lifecycle).
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
        self._format = _resolve_format(format, self._no_color)
        # One writer at a time, so concurrent bridge threads never split a line.
        self._stderr_lock = threading.Lock()
        self._data_console = Console(
            file=sys.stdout,
            no_color=self._no_color,
            force_terminal=self._format is OutputFormat.RICH,
        )
        self._diag_console = Console(file=sys.stderr, no_color=self._no_color, stderr=True)

    @property
    def format(self) -> OutputFormat:
        return self._format

    @property
    def is_verbose(self) -> bool:
        return self._verbose

    # -- stdout ---------------------------------------------------------

    def print_data(self, text: str) -> None:
        print(text, file=sys.stdout, flush=True)

    def format_response(self, data: Any) -> None:
        """Write a JSON-compatible value to stdout in the active format."""
        if self._format is OutputFormat.PLAIN:
            for line in _plain_lines(data):
                self.print_data(line)
            return
        text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        if self._format is OutputFormat.JSON:
            self.print_data(text)
        else:
            self._data_console.print(Syntax(text, "json", theme="monokai", word_wrap=True))

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Write rows to stdout.

        JSON output is a list of objects keyed by *headers*; plain output is
        tab-separated with the header row first.
        """
        if self._format is OutputFormat.JSON:
            self.print_data(json.dumps([dict(zip(headers, row)) for row in rows], indent=2))
        elif self._format is OutputFormat.PLAIN:
            for row in [headers, *rows]:
                self.print_data("\t".join(row))
        else:
            table = Table(*headers, title=title, header_style="bold cyan")
            for row in rows:
                table.add_row(*row)
            self._data_console.print(table)

    # -- stderr ---------------------------------------------------------

    def info(self, message: str) -> None:
        self._report("info", message)

    def success(self, message: str) -> None:
        self._report("success", message)

    def suggest(self, message: str) -> None:
        """A follow-up command the user may want to run."""
        self._report("suggest", message)

    def error(self, message: str) -> None:
        self._report("error", message)

    def debug(self, message: str) -> None:
        if self._verbose:
            self._report("debug", message)

    def _report(self, level: str, message: str) -> None:
        label, style, quietable = _LEVELS[level]
        if quietable and self._quiet:
            return
        with self._stderr_lock:
            if self._no_color:
                print(f"{label}{message}", file=sys.stderr, flush=True)
                return
            if not style:
                markup = escape(message)
            elif label:
                markup = f"[{style}]{escape(label)}[/{style}]{escape(message)}"
            else:
                markup = f"[{style}]{escape(message)}[/{style}]"
            self._diag_console.print(markup, highlight=False)


def _resolve_format(requested: OutputFormat, no_color: bool) -> OutputFormat:
    if requested is not OutputFormat.AUTO:
        return requested
    return OutputFormat.RICH if _is_tty() and not no_color else OutputFormat.PLAIN


def _plain_lines(data: Any) -> Iterator[str]:
    """One ``key<TAB>value`` line per mapping entry, one line per list item."""
    if isinstance(data, dict):
        for key, value in data.items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value, ensure_ascii=False, default=str)
            yield f"{key}\t{value}"
    elif isinstance(data, list):
        yield from (str(item) for item in data)
    else:
        yield str(data)


def _is_tty() -> bool:
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def _should_disable_color() -> bool:
    """``NO_COLOR`` set to anything, or ``TERM=dumb``."""
    return "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """The installed manager, or a default one if none was installed yet."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    global _output
    _output = None


def format_response(data: Any) -> None:
    get_output().format_response(data)


def print_data(text: str) -> None:
    get_output().print_data(text)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def error(message: str) -> None:
    get_output().error(message)


def debug(message: str) -> None:
    get_output().debug(message)
