"""Locate extension executables.

An extension for subcommand ``NAME`` is an executable called
``<prefix>-NAME``. Lookup order, first match wins:

1. Project-local bin directories (``node_modules/.bin``, ``.venv/bin``),
   checked in every directory from the working directory up to the project
   root found by :func:`~apix.extensions.project.scan_parent_dirs`. A
   project-local install therefore shadows a global one.
2. The process command search path (``PATH``).

Lookups only read the filesystem.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Optional

from apix.exceptions import ExtensionNotFoundError
from apix.extensions.models import ExtensionOrigin, ResolvedExtension
from apix.extensions.project import iter_parent_dirs, scan_parent_dirs, walk_parent_dirs
from apix.models import ExtensionsConfig
from apix.output import debug


class ExtensionResolver:
    """Resolve extension names to executables.

    Args:
        config: Naming and lookup rules. Defaults to :class:`ExtensionsConfig`.
        search_path: ``PATH``-style string for the global lookup. ``None``
            uses the current ``PATH``.
    """

    def __init__(
        self,
        config: Optional[ExtensionsConfig] = None,
        search_path: Optional[str] = None,
    ) -> None:
        self._config = config or ExtensionsConfig()
        self._search_path = search_path

    def command_name(self, name: str) -> str:
        return f"{self._config.prefix}-{name}"

    def resolve(self, name: str, cwd: Path) -> ResolvedExtension:
        """Return the executable for extension *name* as seen from *cwd*.

        Raises:
            ExtensionNotFoundError: If neither a local nor a global executable
                exists, or *name* is not a plain command name.
        """
        command = self.command_name(name)
        if not _is_plain_name(name):
            raise ExtensionNotFoundError(command)

        local = self.find_local(name, cwd)
        if local is not None:
            return ResolvedExtension(name=name, path=local, origin=ExtensionOrigin.LOCAL)

        found = self.find_global(name)
        if found is not None:
            return ResolvedExtension(name=name, path=found, origin=ExtensionOrigin.GLOBAL)

        debug(f'failed to find extension command with name "{command}"')
        raise ExtensionNotFoundError(command)

    def find_local(self, name: str, cwd: Path) -> Optional[Path]:
        """Search project-local bin directories between *cwd* and the project root."""
        start = Path(cwd).resolve()
        base = self._project_base(start)
        if base is None:
            return None

        command = self.command_name(name)
        for bin_dir in self._config.local_bin_dirs:
            found = walk_parent_dirs(base=base, start=start, filename=f"{bin_dir}/{command}")
            if found is not None:
                return found
        return None

    def find_global(self, name: str) -> Optional[Path]:
        """Search ``PATH`` for an executable ``<prefix>-<name>``."""
        found = shutil.which(self.command_name(name), path=self._search_path)
        return Path(found) if found else None

    def list_extensions(self, cwd: Path) -> list[ResolvedExtension]:
        """List every extension visible from *cwd*, local entries shadowing global ones.

        The result is sorted by extension name.
        """
        start = Path(cwd).resolve()
        prefix = f"{self._config.prefix}-"
        seen: dict[str, ResolvedExtension] = {}

        base = self._project_base(start)
        if base is not None:
            depth = len(base.parts)
            for directory in iter_parent_dirs(start):
                if len(directory.parts) < depth:
                    break
                for bin_dir in self._config.local_bin_dirs:
                    for path in _iter_prefixed(directory / bin_dir, prefix, executable_only=False):
                        name = path.name[len(prefix):]
                        seen.setdefault(
                            name,
                            ResolvedExtension(name=name, path=path, origin=ExtensionOrigin.LOCAL),
                        )

        search_path = self._search_path
        if search_path is None:
            search_path = os.environ.get("PATH", os.defpath)
        for entry in search_path.split(os.pathsep):
            if not entry:
                continue
            for path in _iter_prefixed(Path(entry), prefix, executable_only=True):
                name = _strip_suffix(path.name[len(prefix):])
                seen.setdefault(
                    name,
                    ResolvedExtension(name=name, path=path, origin=ExtensionOrigin.GLOBAL),
                )

        return [seen[name] for name in sorted(seen)]

    def _project_base(self, start: Path) -> Optional[Path]:
        root = scan_parent_dirs(start, self._config.manifest_files, self._config.lockfiles)
        if root.base_dir is not None:
            debug(f"project root for extension lookup: {root.base_dir}")
        return root.base_dir


def _is_plain_name(name: str) -> bool:
    if not name or name in (".", ".."):
        return False
    separators = {os.sep, "/"}
    if os.altsep:
        separators.add(os.altsep)
    return not any(sep in name for sep in separators)


def _iter_prefixed(directory: Path, prefix: str, executable_only: bool) -> list[Path]:
    try:
        entries = sorted(directory.iterdir())
    except OSError:
        return []
    matches = []
    for path in entries:
        if not path.name.startswith(prefix) or len(path.name) == len(prefix):
            continue
        if not path.is_file():
            continue
        if executable_only and not os.access(path, os.X_OK):
            continue
        matches.append(path)
    return matches


def _strip_suffix(name: str) -> str:
    # Windows PATHEXT entries (apix-foo.exe -> foo)
    if os.name == "nt":
        return os.path.splitext(name)[0]
    return name


def resolve_extension(
    name: str,
    cwd: Path,
    config: Optional[ExtensionsConfig] = None,
) -> ResolvedExtension:
    """Shortcut for ``ExtensionResolver(config).resolve(name, cwd)``."""
    return ExtensionResolver(config).resolve(name, cwd)
