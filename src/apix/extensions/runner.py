"""Run an extension executable as a child process.

The child inherits the terminal (stdin, stdout, stderr) and the parent's
environment plus one extra variable pointing at the API bridge. Nothing the
child prints passes through ``apix``.
"""

from __future__ import annotations

import contextlib
import errno
import os
import signal
import subprocess
import threading
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Optional, Sequence

from apix.exceptions import SpawnError
from apix.extensions.models import Exited, FailedToStart, InvocationOutcome
from apix.output import debug

DEFAULT_ENV_VAR = "APIX_API"


def build_child_env(
    base: Mapping[str, str],
    proxy_url: str,
    env_var: str = DEFAULT_ENV_VAR,
) -> dict[str, str]:
    """Return a new environment mapping: *base* plus ``env_var=proxy_url``.

    *base* is not modified.
    """
    return {**base, env_var: proxy_url}


def run_extension(
    path: Path,
    args: Sequence[str],
    cwd: Path,
    proxy_url: str,
    env_var: str = DEFAULT_ENV_VAR,
    base_env: Optional[Mapping[str, str]] = None,
    on_started: Optional[Callable[[subprocess.Popen], Any]] = None,
) -> InvocationOutcome:
    """Start the extension at *path*, wait for it, and report how it ended.

    Args:
        path: Executable to run.
        args: Arguments passed through verbatim.
        cwd: Working directory for the child.
        proxy_url: Bridge base URL exported as *env_var*.
        env_var: Name of the variable carrying *proxy_url*.
        base_env: Environment to extend. ``None`` uses ``os.environ``.
        on_started: Called with the :class:`subprocess.Popen` once the child
            is running.

    Returns:
        :class:`~apix.extensions.models.Exited` when the child ran (its exit
        status, or ``128 + N`` when killed by signal N), or
        :class:`~apix.extensions.models.FailedToStart` when the OS refused to
        start it. Neither case raises.
    """
    env = build_child_env(os.environ if base_env is None else base_env, proxy_url, env_var)
    argv = [str(path), *args]

    try:
        proc = _spawn(argv, cwd, env)
    except SpawnError as exc:
        debug(f"extension failed to start: {exc}")
        return FailedToStart(diagnostic=str(exc))

    debug(f"extension started: pid {proc.pid}")
    if on_started is not None:
        on_started(proc)

    with _deferred_interrupts():
        returncode = _wait(proc)

    outcome = Exited.from_returncode(returncode)
    if outcome.signal is not None:
        debug(f"extension killed by signal {outcome.signal}")
    else:
        debug(f"extension exited with code {outcome.code}")
    return outcome


def _spawn(argv: list[str], cwd: Path, env: dict[str, str]) -> subprocess.Popen:
    try:
        return subprocess.Popen(argv, cwd=str(cwd), env=env)
    except (OSError, subprocess.SubprocessError) as exc:
        raise SpawnError(_describe_spawn_failure(argv[0], exc)) from exc


def _describe_spawn_failure(executable: str, exc: BaseException) -> str:
    if isinstance(exc, PermissionError):
        reason = "permission denied"
    elif isinstance(exc, OSError) and exc.errno == errno.ENOEXEC:
        reason = "exec format error"
    elif isinstance(exc, OSError) and exc.strerror:
        reason = exc.strerror.lower()
    else:
        reason = str(exc)
    return f"Failed to start extension {executable}: {reason}"


def _wait(proc: subprocess.Popen) -> int:
    # Ctrl-C reaches the whole foreground process group, so the child sees it
    # too and decides for itself when to exit.
    while True:
        try:
            return proc.wait()
        except KeyboardInterrupt:
            continue


@contextlib.contextmanager
def _deferred_interrupts() -> Iterator[None]:
    """Swallow SIGINT in this process while the child runs.

    A Python-level handler is used rather than ``SIG_IGN`` so the disposition
    is not inherited by anything spawned meanwhile. Only the main thread may
    install handlers; elsewhere this is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum: int, frame: Any) -> None:
        debug("interrupt received, waiting for extension to exit")

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous if previous is not None else signal.SIG_DFL)
