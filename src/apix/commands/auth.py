"""``apix auth``: attach credentials to a profile.

The credentials configured here are injected by apix into every upstream
request, including the ones extensions make through the bridge. Extensions
themselves never receive them.

Typical workflow::

    apix auth login myapi        # store a token for the profile
    apix auth test myapi         # check the API accepts it
    apix auth logout myapi       # forget it again
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

import typer

from apix.output import error, get_output, info, success, suggest

if TYPE_CHECKING:
    from apix.models import Profile


auth_app = typer.Typer(no_args_is_help=True)

_REJECTED = (401, 403)


def _profile_or_exit(name: str) -> Profile:
    from apix.config import load_profile
    from apix.exceptions import ConfigError

    try:
        return load_profile(name)
    except ConfigError as exc:
        error(str(exc))
        raise typer.Exit(code=2) from None


@auth_app.command("add")
def auth_add(
    profile_name: str = typer.Argument(help="Profile to configure."),
    auth_type: str = typer.Option(..., "--type", "-t", help="api_key, bearer or basic."),
    header: Optional[str] = typer.Option(None, "--header", help="api_key: header to send it in."),
    location: str = typer.Option("header", "--location", help="api_key: header, query or cookie."),
    param_name: Optional[str] = typer.Option(None, "--param-name", help="api_key: query or cookie name."),
    source: str = typer.Option(
        "prompt", "--source", "-s", help="Where the secret comes from: env:VAR, file:PATH, prompt, store:PROFILE."
    ),
) -> None:
    """Configure auth for a profile without prompting.

    Example::

        apix auth add myapi --type bearer --source env:MY_TOKEN
        apix auth add myapi --type api_key --location query --param-name key --source env:MY_KEY
    """
    from apix.auth import create_default_manager
    from apix.config import save_profile
    from apix.exceptions import AuthError
    from apix.models import AuthConfig

    profile = _profile_or_exit(profile_name)
    auth = AuthConfig(type=auth_type, header=header, location=location, param_name=param_name, source=source)
    try:
        problems = create_default_manager().plugin_for(auth_type).validate_config(auth)
    except AuthError as exc:
        problems = [str(exc)]
    if problems:
        for problem in problems:
            error(problem)
        raise typer.Exit(code=2)

    profile.auth = auth
    save_profile(profile)
    success(f'"{profile_name}" now authenticates with {auth_type}.')
    suggest(f"Check it: apix auth test {profile_name}")


@auth_app.command("login")
def auth_login(
    profile_name: str = typer.Argument(help="Profile to store a credential for."),
    auth_type: str = typer.Option("bearer", "--type", "-t", help="Auth type the credential is for."),
    expires_in: Optional[int] = typer.Option(None, "--expires-in", help="Lifetime in seconds."),
) -> None:
    """Ask for a secret and keep it in apix's credential store.

    The profile is switched to the ``store:<profile>`` source, so bridged
    extension traffic picks the new secret up on the next run.
    """
    from apix.auth import CredentialEntry, CredentialStore
    from apix.config import save_profile
    from apix.models import AuthConfig

    profile = _profile_or_exit(profile_name)
    secret = typer.prompt("Credential", hide_input=True).strip()
    if not secret:
        error("Credential must not be empty.")
        raise typer.Exit(code=2)

    expires_at = None
    if expires_in is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
    CredentialStore(profile_name).save(
        CredentialEntry(auth_type=auth_type, credential=secret, expires_at=expires_at)
    )

    if profile.auth is None or profile.auth.type != auth_type:
        profile.auth = AuthConfig(type=auth_type)
    profile.auth.source = f"store:{profile_name}"
    save_profile(profile)
    success(f'Credential stored for "{profile_name}".')


@auth_app.command("logout")
def auth_logout(profile_name: str = typer.Argument(help="Profile to forget the credential for.")) -> None:
    """Delete the stored credential of a profile."""
    from apix.auth import CredentialStore

    if CredentialStore(profile_name).clear():
        success(f'Stored credential cleared for "{profile_name}".')
    else:
        info(f'No stored credential for "{profile_name}".')


@auth_app.command("list")
def auth_list() -> None:
    """Show each profile's auth type, secret source and stored-credential state."""
    from apix.auth import CredentialStore
    from apix.config import list_profiles, load_profile
    from apix.exceptions import ConfigError

    names = list_profiles()
    if not names:
        info("No profiles configured.")
        suggest("Create one: apix profile create <name> --base-url <url>")
        return

    rows: list[list[str]] = []
    for name in names:
        try:
            auth = load_profile(name).auth
        except ConfigError:
            rows.append([name, "error", "-", "-"])
            continue
        stored = "yes" if CredentialStore(name).is_valid() else "no"
        rows.append([name, auth.type if auth else "none", auth.source if auth else "-", stored])

    get_output().print_table(["Profile", "Auth Type", "Source", "Stored"], rows, title="Profile auth")


@auth_app.command("test")
def auth_test(
    profile_name: str = typer.Argument(help="Profile to check."),
    path: str = typer.Option("/", "--path", help="API path to GET."),
) -> None:
    """Send one authenticated ``GET`` and report whether the API accepted it.

    Exits 2 for an unknown profile and 3 when the profile has no auth or
    the API answers 401/403.
    """
    from apix.auth import create_default_manager
    from apix.client import UpstreamClient
    from apix.exceptions import ApixError

    profile = _profile_or_exit(profile_name)
    if profile.auth is None:
        error(f'Profile "{profile_name}" has no auth configured.')
        suggest(f"Set it up: apix auth add {profile_name} --type bearer --source env:TOKEN")
        raise typer.Exit(code=3)

    info(f"Testing {profile.auth.type} auth for {profile_name} against {profile.base_url}{path}")
    try:
        with UpstreamClient(profile, auth_manager=create_default_manager()) as client:
            status = client.request("GET", path).status_code
    except ApixError as exc:
        error(f"Auth test failed: {exc}")
        raise typer.Exit(code=exc.exit_code) from None

    if status in _REJECTED:
        error(f"Auth rejected. Status: {status}")
        raise typer.Exit(code=3)
    success(f"Auth accepted. Status: {status}")
