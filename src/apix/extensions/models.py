"""Runtime types for a single extension invocation.

None of these are persisted. An :class:`ExtensionInvocation` is created per
CLI call, resolved into a :class:`ResolvedExtension`, served by a bridge
described by a :class:`ProxySession`, and finished with an
:data:`InvocationOutcome`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from apix.exit_codes import EXIT_EXTENSION_NOT_STARTED, EXIT_SIGNAL_BASE


class ExtensionOrigin(str, enum.Enum):
    """Where an extension executable was found."""

    LOCAL = "local"
    GLOBAL = "global"


@dataclass(frozen=True)
class ExtensionInvocation:
    """A request to run extension *name* with *args* from *cwd*."""

    name: str
    args: tuple[str, ...] = ()
    cwd: Path = field(default_factory=Path.cwd)


@dataclass(frozen=True)
class ResolvedExtension:
    name: str
    path: Path
    origin: ExtensionOrigin


class ProxyState(str, enum.Enum):
    CREATED = "created"
    LISTENING = "listening"
    CLOSED = "closed"


@dataclass
class ProxySession:
    """Address and lifecycle state of one API bridge.

    ``port`` is ``0`` until the bridge is listening and the OS has assigned
    an ephemeral port.
    """

    host: str = "127.0.0.1"
    port: int = 0
    state: ProxyState = ProxyState.CREATED

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


@dataclass(frozen=True)
class Exited:
    """The extension ran and terminated.

    ``code`` is the process exit status, or ``128 + signal`` when the process
    was killed by a signal (the number is kept in ``signal``).
    """

    code: int
    signal: Optional[int] = None

    @property
    def exit_code(self) -> int:
        return self.code

    @classmethod
    def from_returncode(cls, returncode: int) -> Exited:
        """Build from a :attr:`subprocess.Popen.returncode` (negative means signalled)."""
        if returncode < 0:
            signum = -returncode
            return cls(code=EXIT_SIGNAL_BASE + signum, signal=signum)
        return cls(code=returncode)


@dataclass(frozen=True)
class FailedToStart:
    """The OS refused to start the extension; ``diagnostic`` says why."""

    diagnostic: str

    @property
    def exit_code(self) -> int:
        return EXIT_EXTENSION_NOT_STARTED


InvocationOutcome = Union[Exited, FailedToStart]


class InvocationState(str, enum.Enum):
    """Lifecycle of :class:`~apix.extensions.invocation.ExtensionInvocationRunner`.

    ``IDLE -> RESOLVING -> (NOT_FOUND | PROXYING -> SPAWNING -> RUNNING
    -> DRAINING -> DONE)``. A spawn failure skips ``RUNNING``.
    """

    IDLE = "idle"
    RESOLVING = "resolving"
    NOT_FOUND = "not_found"
    PROXYING = "proxying"
    SPAWNING = "spawning"
    RUNNING = "running"
    DRAINING = "draining"
    DONE = "done"
