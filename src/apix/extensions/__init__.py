"""Delegation of unknown subcommands to external extension executables.

Running ``apix NAME ARGS...`` for a ``NAME`` that is not built in looks for
an executable ``apix-NAME`` (project-local first, then ``PATH``), starts a
loopback HTTP bridge that forwards to the upstream API with the user's
credentials, and runs the executable with ``APIX_API`` pointing at the
bridge.

Modules:

* :mod:`~apix.extensions.resolver` -- find the executable.
* :mod:`~apix.extensions.proxy` -- the credential-injecting bridge.
* :mod:`~apix.extensions.runner` -- spawn and wait for the child.
* :mod:`~apix.extensions.invocation` -- tie the three together.
"""

from apix.extensions.invocation import ExtensionInvocationRunner, invoke_extension
from apix.extensions.models import (
    Exited,
    ExtensionInvocation,
    ExtensionOrigin,
    FailedToStart,
    InvocationOutcome,
    InvocationState,
    ProxySession,
    ProxyState,
    ResolvedExtension,
)
from apix.extensions.proxy import ProxyBridge
from apix.extensions.resolver import ExtensionResolver, resolve_extension
from apix.extensions.runner import build_child_env, run_extension

__all__ = [
    "Exited",
    "ExtensionInvocation",
    "ExtensionInvocationRunner",
    "ExtensionOrigin",
    "ExtensionResolver",
    "FailedToStart",
    "InvocationOutcome",
    "InvocationState",
    "ProxyBridge",
    "ProxySession",
    "ProxyState",
    "ResolvedExtension",
    "build_child_env",
    "invoke_extension",
    "resolve_extension",
    "run_extension",
]
