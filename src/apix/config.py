"""Where apix keeps its state, and which profile a run talks to.

Layout on disk::

    $XDG_CONFIG_HOME/apix/config.json        settings (GlobalConfig)
    $XDG_CONFIG_HOME/apix/profiles/NAME.json one Profile per upstream API
    $XDG_DATA_HOME/apix/                      credentials, crash logs

A project may pin its profile with an ``apix.json`` holding
``{"default_profile": "..."}`` next to where apix is run.

:func:`resolve_config` picks the profile for a run and
:func:`resolve_credential` turns a profile's credential ``source`` into the
secret itself.
"""

from __future__ import annotations

import contextlib
import getpass
import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from apix.exceptions import ConfigError
from apix.models import GlobalConfig, Profile

APP_DIR_NAME = "apix"
PROJECT_FILE = "apix.json"
PROFILE_ENV = "APIX_PROFILE"
BASE_URL_ENV = "APIX_BASE_URL"

_Model = TypeVar("_Model", bound=BaseModel)


def _app_dir(env_var: str, *home_default: str) -> Path:
    root = os.environ.get(env_var) or Path.home().joinpath(*home_default)
    path = Path(root) / APP_DIR_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """``$XDG_CONFIG_HOME/apix`` (``~/.config/apix``), created on demand."""
    return _app_dir("XDG_CONFIG_HOME", ".config")


def get_data_dir() -> Path:
    """``$XDG_DATA_HOME/apix`` (``~/.local/share/apix``), created on demand."""
    return _app_dir("XDG_DATA_HOME", ".local", "share")


def global_config_path() -> Path:
    return get_config_dir() / "config.json"


def _profiles_dir() -> Path:
    path = get_config_dir() / "profiles"
    path.mkdir(exist_ok=True)
    return path


def _atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Replace *path* with *data* via a temp file in the same directory.

    Readers see either the old file or the new one. *mode* is set on the
    temp file before any byte is written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            if mode is not None:
                os.chmod(tmp_name, mode)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def _write_model(path: Path, model: BaseModel) -> None:
    _atomic_write(path, model.model_dump_json(indent=2) + "\n")


def _read_model(path: Path, model: type[_Model], label: str) -> _Model:
    try:
        return model.model_validate_json(path.read_bytes())
    except ValidationError as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc


# --- settings ---


def load_global_config() -> GlobalConfig:
    """The saved settings, or defaults when nothing was saved yet.

    Raises:
        ConfigError: The file exists but is not valid settings JSON.
    """
    path = global_config_path()
    if not path.is_file():
        return GlobalConfig()
    return _read_model(path, GlobalConfig, "global config")


def save_global_config(config: GlobalConfig) -> None:
    _write_model(global_config_path(), config)


# --- profiles ---


def _profile_file(name: str) -> Path:
    return _profiles_dir() / f"{name}.json"


def list_profiles() -> list[str]:
    return sorted(entry.stem for entry in _profiles_dir().glob("*.json") if entry.is_file())


def profile_exists(name: str) -> bool:
    return _profile_file(name).is_file()


def load_profile(name: str) -> Profile:
    """Read profile *name*.

    Raises:
        ConfigError: No such profile, or its file does not validate.
    """
    path = _profile_file(name)
    if not path.is_file():
        raise ConfigError(f"Profile '{name}' not found at {path}")
    return _read_model(path, Profile, f"profile '{name}'")


def save_profile(profile: Profile) -> None:
    _write_model(_profile_file(profile.name), profile)


def delete_profile(name: str) -> None:
    path = _profile_file(name)
    if not path.is_file():
        raise ConfigError(f"Profile '{name}' not found at {path}")
    path.unlink()


def project_default_profile(cwd: Optional[Path] = None) -> Optional[str]:
    """The profile pinned by ``apix.json`` in *cwd*, if any.

    Raises:
        ConfigError: ``apix.json`` exists but is not a JSON object.
    """
    path = (cwd or Path.cwd()) / PROJECT_FILE
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise ConfigError(f"Invalid project config at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid project config at {path}: expected a JSON object")
    return data.get("default_profile") or None


def resolve_config(
    cli_profile: Optional[str] = None,
    cli_base_url: Optional[str] = None,
    cwd: Optional[Path] = None,
) -> tuple[GlobalConfig, Optional[Profile]]:
    """Settings plus the profile this run uses, ``None`` if there is none.

    The profile name is the first one set among ``--profile``,
    ``$APIX_PROFILE``, the project's ``apix.json`` and the saved default.
    With none set and exactly one profile on disk, that profile is used
    (unless ``auto_select_single_profile`` is off). ``--base-url`` and then
    ``$APIX_BASE_URL`` override the profile's API address for this run only.

    Raises:
        ConfigError: A named profile does not exist or a file is invalid.
    """
    settings = load_global_config()
    candidates = (
        cli_profile,
        os.environ.get(PROFILE_ENV),
        project_default_profile(cwd),
        settings.default_profile,
    )
    name = next((candidate for candidate in candidates if candidate), None)
    if name is None and settings.auto_select_single_profile:
        existing = list_profiles()
        if len(existing) == 1:
            name = existing[0]
    if name is None:
        return settings, None

    profile = load_profile(name)
    base_url = cli_base_url or os.environ.get(BASE_URL_ENV)
    if base_url:
        profile.base_url = base_url
    return settings, profile


# --- credential sources ---


def _from_env(var: str) -> str:
    value = os.environ.get(var)
    if value is None:
        raise ConfigError(f"Environment variable '{var}' is not set")
    return value


def _from_file(location: str) -> str:
    path = Path(location).expanduser()
    if not path.is_file():
        raise ConfigError(f"Credential file not found: {path}")
    try:
        return path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ConfigError(f"Cannot read credential file {path}: {exc}") from exc


def _from_store(profile_name: str) -> str:
    from apix.auth.credential_store import CredentialStore

    entry = CredentialStore(profile_name).load_valid()
    if entry is None:
        raise ConfigError(f"No valid credential in store for profile '{profile_name}'")
    return entry.credential


_SOURCES: dict[str, Callable[[str], str]] = {
    "env": _from_env,
    "file": _from_file,
    "store": _from_store,
}


def resolve_credential(source: str) -> str:
    """Return the secret a profile's ``auth.source`` points at.

    ``env:VAR``, ``file:PATH`` (surrounding whitespace stripped),
    ``store:PROFILE`` (saved by ``apix auth login``), or ``prompt`` to ask on
    the terminal.

    Raises:
        ConfigError: The source is unknown or yields nothing usable.
    """
    if source == "prompt":
        if not sys.stdin.isatty():
            raise ConfigError("Cannot prompt for credentials: stdin is not a TTY")
        return getpass.getpass("Enter credential: ")
    scheme, sep, ref = source.partition(":")
    reader = _SOURCES.get(scheme) if sep else None
    if reader is None:
        raise ConfigError(f"Unknown credential source format: {source}")
    return reader(ref)
