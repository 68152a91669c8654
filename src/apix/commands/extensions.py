"""Extension commands -- see which extensions ``apix`` would run.

Neither command starts anything; both only look at the filesystem.
"""

from __future__ import annotations

from pathlib import Path

import typer

from apix.output import error, get_output, info, print_data, suggest


extensions_app = typer.Typer(no_args_is_help=True)


def _lookup_context(ctx: typer.Context):  # noqa: ANN202
    from apix.config import load_global_config
    from apix.extensions import ExtensionResolver

    obj = ctx.find_root().obj or {}
    cwd = Path(obj.get("cwd") or Path.cwd())
    return ExtensionResolver(load_global_config().extensions), cwd


@extensions_app.command("list")
def extensions_list(ctx: typer.Context) -> None:
    """List extensions visible from the current directory.

    Project-local extensions shadow global ones of the same name.
    """
    resolver, cwd = _lookup_context(ctx)
    found = resolver.list_extensions(cwd)
    if not found:
        info("No extensions found.")
        suggest(f"Install an executable named {resolver.command_name('<name>')} on your PATH.")
        return

    rows = [[ext.name, ext.origin.value, str(ext.path)] for ext in found]
    get_output().print_table(["Name", "Origin", "Path"], rows, title="Extensions")


@extensions_app.command("which")
def extensions_which(
    ctx: typer.Context,
    name: str = typer.Argument(help="Extension name (without the prefix)."),
) -> None:
    """Print the executable ``apix NAME`` would run."""
    from apix.exceptions import ExtensionNotFoundError

    resolver, cwd = _lookup_context(ctx)
    try:
        resolved = resolver.resolve(name, cwd)
    except ExtensionNotFoundError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    print_data(str(resolved.path))
