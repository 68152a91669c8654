"""Secrets saved by ``apix auth login``, one file per profile.

Files live at ``<data dir>/credentials/<profile>.json`` and are only ever
created with mode ``0o600``. A profile whose ``auth.source`` is
``store:<profile>`` reads its secret from here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ValidationError

from apix.config import _atomic_write, get_data_dir

_FILE_MODE = 0o600


class CredentialEntry(BaseModel):
    """A stored secret and the auth type it was entered for."""

    auth_type: str
    credential: str
    expires_at: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Whether *now* (default: the current UTC time) is past ``expires_at``.

        A naive ``expires_at`` is taken to be UTC.
        """
        if self.expires_at is None:
            return False
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return (now or datetime.now(timezone.utc)) >= expires


class CredentialStore:
    """The stored credential of one profile.

    Example::

        store = CredentialStore("prod")
        store.save(CredentialEntry(auth_type="bearer", credential="tok123"))
        store.load_valid().credential   # "tok123"
    """

    def __init__(self, profile_name: str) -> None:
        self.profile_name = profile_name

    @property
    def path(self) -> Path:
        directory = get_data_dir() / "credentials"
        directory.mkdir(parents=True, exist_ok=True)
        return directory / f"{self.profile_name}.json"

    def save(self, entry: CredentialEntry) -> None:
        _atomic_write(self.path, entry.model_dump_json(indent=2) + "\n", mode=_FILE_MODE)

    def load(self) -> Optional[CredentialEntry]:
        """The saved entry, expired or not; ``None`` when absent or unreadable."""
        path = self.path
        try:
            return CredentialEntry.model_validate_json(path.read_bytes())
        except (OSError, ValidationError):
            return None

    def load_valid(self) -> Optional[CredentialEntry]:
        entry = self.load()
        if entry is not None and entry.is_expired():
            return None
        return entry

    def is_valid(self) -> bool:
        return self.load_valid() is not None

    def clear(self) -> bool:
        """Forget the credential; ``False`` if there was nothing to forget."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True
