"""Orchestrate one extension invocation from name to exit code.

``invoke_extension`` is what the CLI calls for an unknown subcommand. It
resolves the executable, opens the upstream client, starts the API bridge,
runs the child, and tears everything down in reverse order.

Resolution happens before anything else is opened, so a missing extension
never authenticates, binds a socket, or spawns a process.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional, Sequence

from apix.client.upstream import UpstreamClient
from apix.exceptions import ExtensionError, ExtensionNotFoundError
from apix.extensions.models import (
    ExtensionInvocation,
    FailedToStart,
    InvocationOutcome,
    InvocationState,
)
from apix.extensions.proxy import ProxyBridge
from apix.extensions.resolver import ExtensionResolver
from apix.extensions.runner import run_extension
from apix.models import ExtensionsConfig
from apix.output import debug, error


class ExtensionInvocationRunner:
    """Drives a single invocation through :class:`InvocationState`.

    Single use: create a new runner per invocation.

    Args:
        client: Upstream client, not yet entered. The runner enters and
            exits it.
        config: Extension lookup rules.
        resolver: Custom resolver; defaults to one built from *config*.
        base_env: Environment handed to the child (plus the bridge URL).
            ``None`` uses ``os.environ``.
    """

    def __init__(
        self,
        client: UpstreamClient,
        config: Optional[ExtensionsConfig] = None,
        resolver: Optional[ExtensionResolver] = None,
        base_env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._client = client
        self._config = config or ExtensionsConfig()
        self._resolver = resolver or ExtensionResolver(self._config)
        self._base_env = base_env
        self._state = InvocationState.IDLE
        self._transitions: list[InvocationState] = [InvocationState.IDLE]
        self._outcome: Optional[InvocationOutcome] = None

    @property
    def state(self) -> InvocationState:
        return self._state

    @property
    def transitions(self) -> list[InvocationState]:
        """Every state entered so far, in order, starting with ``IDLE``."""
        return list(self._transitions)

    @property
    def outcome(self) -> Optional[InvocationOutcome]:
        return self._outcome

    def invoke(self, invocation: ExtensionInvocation) -> int:
        """Run *invocation* and return the exit code ``apix`` should exit with.

        Raises:
            ExtensionNotFoundError: No executable for the extension exists.
            ProxyBindError: The bridge could not listen; nothing was spawned.
            AuthError: Credentials for the active profile could not be
                resolved.
        """
        if self._state is not InvocationState.IDLE:
            raise ExtensionError("Extension invocation runner can only be used once")

        self._transition(InvocationState.RESOLVING)
        try:
            resolved = self._resolver.resolve(invocation.name, invocation.cwd)
        except ExtensionNotFoundError:
            self._transition(InvocationState.NOT_FOUND)
            raise
        debug(f"resolved extension {invocation.name!r} to {resolved.path} ({resolved.origin.value})")

        with self._client:
            self._transition(InvocationState.PROXYING)
            bridge = ProxyBridge(self._client)
            proxy_url = bridge.start()
            try:
                self._transition(InvocationState.SPAWNING)
                outcome = run_extension(
                    resolved.path,
                    invocation.args,
                    invocation.cwd,
                    proxy_url,
                    env_var=self._config.env_var,
                    base_env=self._base_env,
                    on_started=lambda _proc: self._transition(InvocationState.RUNNING),
                )
            finally:
                self._transition(InvocationState.DRAINING)
                bridge.stop()

        self._outcome = outcome
        if isinstance(outcome, FailedToStart):
            error(outcome.diagnostic)
        self._transition(InvocationState.DONE)
        return outcome.exit_code

    def _transition(self, state: InvocationState) -> None:
        debug(f"extension invocation: {self._state.value} -> {state.value}")
        self._state = state
        self._transitions.append(state)


def invoke_extension(
    client: UpstreamClient,
    name: str,
    args: Sequence[str],
    cwd: Path,
    config: Optional[ExtensionsConfig] = None,
) -> int:
    """Run extension *name* with *args* from *cwd*; return its exit code."""
    invocation = ExtensionInvocation(name=name, args=tuple(args), cwd=Path(cwd))
    return ExtensionInvocationRunner(client, config=config).invoke(invocation)
