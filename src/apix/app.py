"""Typer application and CLI entry point for apix.

This module wires together the top-level Typer application, registers the
built-in sub-commands (``auth``, ``config``, ``profile``, ``team``,
``extensions``), and routes every other sub-command to an external
extension executable via :class:`ExtensionGroup`.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. It installs signal handlers, registers commands, and
invokes the Typer app. Unhandled exceptions are written to a crash log under
the data directory.

See Also:
    :mod:`apix.extensions`: Extension lookup, the API bridge, and the child
        process runner.
    :mod:`apix.config`: Profile and global configuration resolution.
    :mod:`apix.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import os
import signal
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import click
import typer
from typer.core import TyperGroup

from apix import __version__
from apix.exceptions import ApixError
from apix.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INTERRUPTED


class ExtensionGroup(TyperGroup):
    """Root command group that delegates unknown sub-commands to extensions.

    ``apix NAME ARGS...`` for a ``NAME`` that is not a built-in command
    resolves to a passthrough command which hands ``ARGS`` verbatim
    (``--help`` included) to the ``apix-NAME`` executable.
    """

    def get_command(self, ctx: click.Context, cmd_name: str) -> Optional[click.Command]:
        command = super().get_command(ctx, cmd_name)
        if command is not None or cmd_name.startswith("-"):
            return command
        return _extension_command(cmd_name)


def _extension_command(name: str) -> click.Command:
    @click.pass_context
    def _callback(ctx: click.Context, args: tuple[str, ...]) -> None:
        raise typer.Exit(code=_run_extension(ctx, name, list(args)))

    return click.Command(
        name=name,
        callback=_callback,
        params=[click.Argument(["args"], nargs=-1, type=click.UNPROCESSED)],
        context_settings={
            "ignore_unknown_options": True,
            "allow_interspersed_args": False,
            "help_option_names": [],
        },
        add_help_option=False,
        help=f"Run the apix-{name} extension.",
    )


def _run_extension(ctx: click.Context, name: str, args: list[str]) -> int:
    """Resolve config and run extension *name*; return the exit code."""
    from apix.auth import create_default_manager
    from apix.client import UpstreamClient
    from apix.config import resolve_config
    from apix.exceptions import ConfigError, ExtensionNotFoundError
    from apix.extensions import ExtensionResolver, invoke_extension
    from apix.output import error, suggest

    obj = ctx.find_root().obj or {}
    cwd = Path(obj.get("cwd") or Path.cwd())

    try:
        global_cfg, profile = resolve_config(
            cli_profile=obj.get("profile"),
            cli_base_url=obj.get("base_url"),
            cwd=cwd,
        )
        if profile is None:
            # A missing extension is reported as such even without a profile.
            ExtensionResolver(global_cfg.extensions).resolve(name, cwd)
            raise ConfigError("No active profile; the extension has no API to talk to.")

        client = UpstreamClient(profile, auth_manager=create_default_manager())
        return invoke_extension(client, name, args, cwd, config=global_cfg.extensions)
    except ExtensionNotFoundError as exc:
        error(str(exc))
        suggest("See installed extensions: apix extensions list")
        return exc.exit_code
    except ConfigError as exc:
        error(str(exc))
        suggest("Create one: apix profile create <name> --base-url <url>")
        return exc.exit_code
    except ApixError as exc:
        error(str(exc))
        return exc.exit_code


app = typer.Typer(
    name="apix",
    cls=ExtensionGroup,
    help="Command-line client for the API. Any other command NAME runs the apix-NAME extension.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _print_version(requested: bool) -> None:
    if requested:
        typer.echo(f"apix {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_print_version, is_eager=True, help="Print the apix version."
    ),
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="API profile for this run."),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Send API traffic to this URL instead."),
    json_output: bool = typer.Option(False, "--json", help="Print command data as JSON."),
    plain_output: bool = typer.Option(False, "--plain", help="Print command data as plain text."),
    no_color: bool = typer.Option(False, "--no-color", help="Never use colour."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print data, warnings and errors."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Trace extension and bridge activity."),
    force: bool = typer.Option(False, "--force", "-f", help="Answer yes to confirmations."),
    cwd: Optional[Path] = typer.Option(
        None,
        "--cwd",
        help="Directory to run from (extension lookup and project config).",
        exists=True,
        file_okay=False,
        resolve_path=True,
    ),
) -> None:
    """Install the run's output settings and share the global options.

    Sub-commands and the extension passthrough read ``profile``,
    ``base_url``, ``force`` and ``cwd`` from the root context's ``obj``.
    """
    from apix.output import OutputFormat, OutputManager, set_output

    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    else:
        fmt = _configured_format()
    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    ctx.ensure_object(dict)
    ctx.obj.update(profile=profile, base_url=base_url, force=force, verbose=verbose, cwd=cwd)


def _configured_format():  # noqa: ANN202
    """``output.format`` from the settings file; ``AUTO`` if it cannot be read.

    A broken settings file is reported by whichever command reads it next.
    """
    from apix.config import load_global_config
    from apix.output import OutputFormat

    try:
        return OutputFormat(load_global_config().output.format)
    except (ApixError, ValueError):
        return OutputFormat.AUTO


def _register_commands() -> None:
    from apix.commands.auth import auth_app
    from apix.commands.config import config_app
    from apix.commands.extensions import extensions_app
    from apix.commands.profile import profile_app
    from apix.commands.team import team_app

    app.add_typer(auth_app, name="auth", help="Attach credentials to a profile.")
    app.add_typer(config_app, name="config", help="Show or change apix settings.")
    app.add_typer(profile_app, name="profile", help="Manage API profiles.")
    app.add_typer(team_app, name="team", help="Switch the active team.")
    app.add_typer(extensions_app, name="extensions", help="Inspect installed extensions.")


_register_commands()


def _exit_on_sigint() -> None:
    def _on_sigint(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)

    signal.signal(signal.SIGINT, _on_sigint)


def _write_crash_log() -> Path:
    """Save the traceback being handled under ``<data dir>/logs``."""
    from apix.config import get_data_dir

    log_dir = get_data_dir() / "logs"
    log_dir.mkdir(exist_ok=True)
    log_path = log_dir / f"crash-{datetime.now():%Y%m%d-%H%M%S}-{os.getpid()}.log"
    log_path.write_text(traceback.format_exc(), encoding="utf-8")
    return log_path


def main() -> None:
    """Console-script entry point.

    An :class:`~apix.exceptions.ApixError` that escapes a command exits with
    its own ``exit_code``. Anything else is a bug: the traceback goes to a
    crash log and the exit code is 1.
    """
    _exit_on_sigint()
    try:
        app()
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_INTERRUPTED)
    except ApixError as exc:
        from apix.output import error

        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception:
        from apix.output import error

        error(f"Unexpected error. Debug log: {_write_crash_log()}")
        sys.exit(EXIT_GENERIC_FAILURE)
