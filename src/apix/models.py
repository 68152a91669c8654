"""Canonical Pydantic models shared across all apix modules.

This is the single source of truth for persisted data shapes in the project.
Every other module imports configuration types from here rather than defining
its own. All of them are serialised as JSON in the user's config directory:
:class:`AuthConfig`, :class:`RequestConfig`, :class:`OutputConfig`,
:class:`ExtensionsConfig`, :class:`GlobalConfig`, and :class:`Profile`.

Runtime-only types for extension execution (resolved paths, bridge sessions,
exit outcomes) live in :mod:`apix.extensions.models`.

All models use Pydantic v2 with ``model_config`` where needed. Configuration
models that accept plugin-defined extensions use ``extra="allow"`` so that
unknown keys are preserved in ``model_extra``.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Auth Config ---


class AuthConfig(BaseModel):
    """Authentication configuration embedded in a :class:`Profile`.

    The ``type`` field selects the authentication strategy (``api_key``,
    ``bearer`` or ``basic``), and the remaining fields supply
    strategy-specific parameters.

    Plugins may define their own fields beyond the ones declared here.
    Extra fields are preserved and accessible via ``model_extra``.

    Example::

        AuthConfig(
            type="api_key",
            header="X-API-Key",
            location="header",
            source="env:MY_API_KEY",
        )
    """

    model_config = ConfigDict(extra="allow")

    type: str = Field(description="Auth type: api_key, bearer, basic")
    header: Optional[str] = Field(
        default=None, description="Header name for api_key auth"
    )
    param_name: Optional[str] = Field(
        default=None, description="Query parameter name for api_key auth"
    )
    location: str = Field(
        default="header", description="Where to send: header, query, cookie"
    )
    source: str = Field(
        default="prompt",
        description="Credential source: env:VAR, file:/path, prompt, store:PROFILE",
    )


class RequestConfig(BaseModel):
    """Default HTTP request settings applied to every upstream API call in a profile."""

    timeout: int = Field(
        default=30, description="Connect/read timeout in seconds (0 disables)"
    )
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class ExtensionsConfig(BaseModel):
    """How extension executables are named, found, and wired to the API bridge.

    An extension for subcommand ``NAME`` is an executable called
    ``<prefix>-NAME``. Project-local installs are searched under each of
    ``local_bin_dirs`` between the working directory and the project root
    (the nearest directory holding a lockfile, else a manifest) before
    falling back to ``PATH``.
    """

    prefix: str = Field(default="apix", description="Executable name prefix")
    env_var: str = Field(
        default="APIX_API",
        description="Environment variable that carries the bridge URL to the child",
    )
    local_bin_dirs: list[str] = Field(
        default_factory=lambda: ["node_modules/.bin", ".venv/bin"],
        description="Project-relative directories searched before PATH",
    )
    manifest_files: list[str] = Field(
        default_factory=lambda: ["package.json", "pyproject.toml"],
        description="Files that mark a project directory",
    )
    lockfiles: list[str] = Field(
        default_factory=lambda: [
            "package-lock.json",
            "yarn.lock",
            "pnpm-lock.yaml",
            "bun.lockb",
            "uv.lock",
            "poetry.lock",
        ],
        description="Lockfiles that mark a (workspace) project root",
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/apix/config.json``.

    Loaded and saved by :func:`~apix.config.load_global_config` and
    :func:`~apix.config.save_global_config`. Fields here have the
    lowest precedence and can be overridden by project config, environment
    variables, or CLI flags. See :func:`~apix.config.resolve_config`
    for the full precedence chain.
    """

    default_profile: Optional[str] = None
    auto_select_single_profile: bool = True
    output: OutputConfig = Field(default_factory=OutputConfig)
    extensions: ExtensionsConfig = Field(default_factory=ExtensionsConfig)


class Profile(BaseModel):
    """Per-API profile stored as JSON under the ``profiles/`` config directory.

    A profile names one upstream API (``base_url``), the credentials used to
    reach it, and the account context requests run under. ``default_team``
    is the user's own account context; ``team`` is an override set with
    ``apix team switch``. Interactive commands honour the override, while
    requests bridged on behalf of extensions always use ``default_team``.

    See Also:
        :func:`~apix.config.load_profile`: Deserialise a profile by name.
        :func:`~apix.config.save_profile`: Persist a profile to disk.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    base_url: str = Field(description="Root URL of the upstream REST API")
    auth: Optional[AuthConfig] = None
    default_team: Optional[str] = Field(
        default=None, description="Team used when no override is active"
    )
    team: Optional[str] = Field(
        default=None, description="Team override selected with 'apix team switch'"
    )
    request: RequestConfig = Field(default_factory=RequestConfig)
