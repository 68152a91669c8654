"""Project root scanning for project-local extension installs.

A project is marked by a manifest (``package.json``, ``pyproject.toml``)
and, for workspaces, a lockfile that may sit several directories above the
nearest manifest. Local extension lookups walk from the working directory up
to that root.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, Optional


@dataclass(frozen=True)
class ProjectRoot:
    """Result of :func:`scan_parent_dirs`.

    Attributes:
        manifest_path: Nearest manifest file at or above the start directory.
        lockfile_path: Nearest lockfile at or above the start directory.
    """

    manifest_path: Optional[Path] = None
    lockfile_path: Optional[Path] = None

    @property
    def base_dir(self) -> Optional[Path]:
        """Directory of the lockfile if one was found, else of the manifest."""
        marker = self.lockfile_path or self.manifest_path
        return marker.parent if marker is not None else None


def iter_parent_dirs(start: Path) -> Iterator[Path]:
    """Yield *start* and each of its ancestors up to the filesystem root."""
    current = start
    while True:
        yield current
        if current.parent == current:
            return
        current = current.parent


def _first_match(directory: Path, names: Iterable[str]) -> Optional[Path]:
    for name in names:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def scan_parent_dirs(
    start: Path,
    manifest_files: Iterable[str],
    lockfiles: Iterable[str],
) -> ProjectRoot:
    """Find the nearest manifest and the nearest lockfile at or above *start*."""
    manifest_files = tuple(manifest_files)
    lockfiles = tuple(lockfiles)
    manifest_path: Optional[Path] = None
    lockfile_path: Optional[Path] = None

    for directory in iter_parent_dirs(start):
        if manifest_path is None:
            manifest_path = _first_match(directory, manifest_files)
        if lockfile_path is None:
            lockfile_path = _first_match(directory, lockfiles)
        if manifest_path is not None and lockfile_path is not None:
            break

    return ProjectRoot(manifest_path=manifest_path, lockfile_path=lockfile_path)


def walk_parent_dirs(base: Path, start: Path, filename: str) -> Optional[Path]:
    """Return the first ``<dir>/<filename>`` that is a file, walking from *start* up to *base*.

    *base* itself is checked last; directories shallower than *base* are never
    checked.
    """
    depth = len(base.parts)
    for directory in iter_parent_dirs(start):
        if len(directory.parts) < depth:
            break
        candidate = directory / filename
        if candidate.is_file():
            return candidate
    return None
