"""Profile commands -- create, list, select, and delete API profiles.

A profile names one upstream API: its base URL, auth config, and team
context. Exactly one profile is active per invocation (see
:func:`~apix.config.resolve_config`).
"""

from __future__ import annotations

from typing import Optional

import typer

from apix.output import error, get_output, info, success, suggest


profile_app = typer.Typer(no_args_is_help=True)


@profile_app.command("create")
def profile_create(
    name: str = typer.Argument(help="Profile name."),
    base_url: str = typer.Option(..., "--base-url", help="Root URL of the API."),
    default_team: Optional[str] = typer.Option(
        None, "--default-team", help="Team used when no team has been switched to."
    ),
    timeout: int = typer.Option(30, "--timeout", help="Request timeout in seconds (0 disables)."),
    no_verify_ssl: bool = typer.Option(False, "--no-verify-ssl", help="Skip TLS verification."),
    use: bool = typer.Option(False, "--use", help="Make this the default profile."),
) -> None:
    """Create a new profile.

    Example::

        apix profile create prod --base-url https://api.example.com --use
    """
    from apix.config import load_global_config, profile_exists, save_global_config, save_profile
    from apix.models import Profile, RequestConfig

    if profile_exists(name):
        error(f'Profile "{name}" already exists.')
        raise typer.Exit(code=2)

    profile = Profile(
        name=name,
        base_url=base_url,
        default_team=default_team,
        request=RequestConfig(timeout=timeout, verify_ssl=not no_verify_ssl),
    )
    save_profile(profile)
    success(f'Profile "{name}" created.')

    if use:
        config = load_global_config()
        config.default_profile = name
        save_global_config(config)
        info(f'Default profile set to "{name}".')
    suggest(f"Add credentials: apix auth add {name} --type bearer --source env:TOKEN")


@profile_app.command("list")
def profile_list() -> None:
    """List profiles, marking the default one."""
    from apix.config import list_profiles, load_global_config, load_profile
    from apix.exceptions import ConfigError

    names = list_profiles()
    if not names:
        info("No profiles configured.")
        suggest("Create one: apix profile create <name> --base-url <url>")
        return

    default = load_global_config().default_profile
    rows: list[list[str]] = []
    for name in names:
        marker = "*" if name == default else ""
        try:
            profile = load_profile(name)
        except ConfigError:
            rows.append([marker, name, "error", "-"])
            continue
        rows.append([marker, name, profile.base_url, profile.team or profile.default_team or "-"])

    get_output().print_table(["", "Profile", "Base URL", "Team"], rows, title="Profiles")


@profile_app.command("use")
def profile_use(name: str = typer.Argument(help="Profile to make the default.")) -> None:
    """Set the default profile."""
    from apix.config import load_global_config, profile_exists, save_global_config

    if not profile_exists(name):
        error(f'Profile "{name}" not found.')
        raise typer.Exit(code=2)

    config = load_global_config()
    config.default_profile = name
    save_global_config(config)
    success(f'Default profile set to "{name}".')


@profile_app.command("delete")
def profile_delete(
    ctx: typer.Context,
    name: str = typer.Argument(help="Profile to delete."),
) -> None:
    """Delete a profile and its stored credential.

    Asks for confirmation unless ``--force`` is active.
    """
    from apix.auth import CredentialStore
    from apix.config import delete_profile, load_global_config, save_global_config
    from apix.exceptions import ConfigError

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm(f'Delete profile "{name}"?'):
        info("Cancelled.")
        raise typer.Exit()

    try:
        delete_profile(name)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None
    CredentialStore(name).clear()

    config = load_global_config()
    if config.default_profile == name:
        config.default_profile = None
        save_global_config(config)
    success(f'Profile "{name}" deleted.')
