"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~apix.exceptions.ApixError` subclass.
External tooling (CI scripts, shell wrappers) can inspect the exit code to
determine the failure class without parsing stderr.

When a command is delegated to an extension, the extension's own exit code
is returned unchanged. The codes at 126 and above follow POSIX shell
conventions so that ``apix foo`` behaves like running ``apix-foo`` directly.

Example::

    $ apix frobnicate
    $ echo $?
    127   # EXIT_COMMAND_NOT_FOUND -- no apix-frobnicate executable
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""Authentication or authorisation failed."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_PROXY_ERROR = 8
"""The local API bridge for an extension could not be started."""

EXIT_EXTENSION_NOT_STARTED = 126
"""The extension executable was found but the OS refused to start it."""

EXIT_COMMAND_NOT_FOUND = 127
"""No extension executable matched the requested subcommand."""

EXIT_SIGNAL_BASE = 128
"""Added to the signal number when an extension is killed by a signal."""

EXIT_INTERRUPTED = 130
"""The user cancelled with Ctrl-C (``128 + SIGINT``)."""
