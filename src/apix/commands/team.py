"""Team commands -- choose which team interactive requests act for.

``apix team switch`` stores an override on the active profile. Built-in
commands honour it; traffic from extensions through the API bridge always
uses the profile's ``default_team`` instead.
"""

from __future__ import annotations

import typer

from apix.output import error, format_response, success


team_app = typer.Typer(no_args_is_help=True)


def _active_profile(ctx: typer.Context):  # noqa: ANN202
    from apix.config import resolve_config
    from apix.exceptions import ConfigError

    obj = ctx.find_root().obj or {}
    try:
        _, profile = resolve_config(cli_profile=obj.get("profile"), cwd=obj.get("cwd"))
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None
    if profile is None:
        error("No active profile.")
        raise typer.Exit(code=2)
    return profile


@team_app.command("switch")
def team_switch(
    ctx: typer.Context,
    team: str = typer.Argument(help="Team identifier."),
) -> None:
    """Act for *team* in interactive commands."""
    from apix.config import load_profile, save_profile

    # Reload so a --base-url override is not written back.
    profile = load_profile(_active_profile(ctx).name)
    profile.team = team
    save_profile(profile)
    success(f'Switched "{profile.name}" to team {team}.')


@team_app.command("clear")
def team_clear(ctx: typer.Context) -> None:
    """Drop the team override and fall back to the default team."""
    from apix.config import load_profile, save_profile

    profile = load_profile(_active_profile(ctx).name)
    profile.team = None
    save_profile(profile)
    success(f'Cleared team override for "{profile.name}".')


@team_app.command("show")
def team_show(ctx: typer.Context) -> None:
    """Show the current and default team of the active profile."""
    profile = _active_profile(ctx)
    format_response(
        {
            "profile": profile.name,
            "team": profile.team,
            "default_team": profile.default_team,
        }
    )
