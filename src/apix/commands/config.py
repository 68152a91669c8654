"""``apix config``: inspect and edit the user-wide settings file.

The settings are a :class:`~apix.models.GlobalConfig`: the default
profile, the output format, and the extension lookup rules (executable
prefix, bridge environment variable, project bin directories). Keys are
addressed in dot notation, e.g. ``extensions.prefix``.
"""

from __future__ import annotations

import typer

from apix.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)

_TRUTHY = frozenset({"true", "1", "yes", "on"})


@config_app.command("show")
def config_show() -> None:
    """Print the current settings.

    Example::

        apix --json config show
    """
    from apix.config import global_config_path, load_global_config

    settings = load_global_config()
    info(f"Settings file: {global_config_path()}")
    format_response(settings.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Dotted setting name, e.g. 'extensions.prefix'."),
    value: str = typer.Argument(help="New value. Lists are comma-separated."),
) -> None:
    """Change one setting.

    The value is converted to the type of the setting it replaces and the
    whole file is re-validated before it is written. Exits 2 on an unknown
    key or an invalid value.

    Example::

        apix config set extensions.env_var ACME_API
        apix config set extensions.local_bin_dirs node_modules/.bin,bin
    """
    from apix.config import load_global_config, save_global_config
    from apix.models import GlobalConfig

    settings = load_global_config().model_dump(mode="json")
    *sections, leaf = key.split(".")
    node: object = settings
    for name in sections:
        node = node.get(name) if isinstance(node, dict) else None
    if not isinstance(node, dict) or leaf not in node or isinstance(node[leaf], dict):
        error(f"Unknown setting: {key}")
        raise typer.Exit(code=2)

    try:
        node[leaf] = _convert(value, node[leaf])
        updated = GlobalConfig.model_validate(settings)
    except ValueError as exc:
        error(f"Invalid value for {key}: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(updated)
    success(f"{key} = {node[leaf]}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Restore every setting to its default. Profiles are left alone."""
    from apix.config import save_global_config
    from apix.models import GlobalConfig

    forced = bool((ctx.obj or {}).get("force"))
    if not forced and not typer.confirm("Restore default settings?"):
        info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Settings restored to defaults.")


def _convert(raw: str, current: object) -> object:
    """Parse *raw* as the type of *current*, the value being replaced."""
    if isinstance(current, bool):
        return raw.strip().lower() in _TRUTHY
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, list):
        return [item.strip() for item in raw.split(",") if item.strip()]
    return raw
