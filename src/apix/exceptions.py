"""Exception hierarchy for apix.

All exceptions inherit from :class:`ApixError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`apix.exit_codes`.
The top-level error handler in :func:`apix.app.main` catches
``ApixError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    ApixError (exit 1)
    +-- AuthError                  (exit 3)
    +-- ConnectionError_           (exit 6)
    +-- ConfigError                (exit 1)
    +-- ExtensionError             (exit 1)
        +-- ExtensionNotFoundError (exit 127)
        +-- ProxyBindError         (exit 8)
        +-- SpawnError             (exit 126)
        +-- ProxyForwardError      (exit 6)
"""

from apix.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_COMMAND_NOT_FOUND,
    EXIT_CONNECTION_ERROR,
    EXIT_EXTENSION_NOT_STARTED,
    EXIT_GENERIC_FAILURE,
    EXIT_PROXY_ERROR,
)


class ApixError(Exception):
    """Base exception for all apix errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`apix.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class AuthError(ApixError):
    """Raised when authentication or authorisation fails (e.g. invalid API key, expired token)."""

    exit_code = EXIT_AUTH_FAILURE


class ConnectionError_(ApixError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class ConfigError(ApixError):
    """Raised for configuration problems (missing profiles, invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class ExtensionError(ApixError):
    """Base class for failures while delegating a subcommand to an extension."""

    exit_code = EXIT_GENERIC_FAILURE


class ExtensionNotFoundError(ExtensionError):
    """Raised when no ``<prefix>-<name>`` executable exists locally or on ``PATH``.

    Args:
        command: The executable name that was searched for (e.g. ``apix-build``).
    """

    exit_code = EXIT_COMMAND_NOT_FOUND

    def __init__(self, command: str):
        super().__init__(f'Command "{command}" not found')
        self.command = command


class ProxyBindError(ExtensionError):
    """Raised when the loopback API bridge cannot acquire a listening socket."""

    exit_code = EXIT_PROXY_ERROR


class SpawnError(ExtensionError):
    """The OS refused to start an extension (permission denied, bad format, missing interpreter).

    :func:`apix.extensions.runner.run_extension` never lets this escape;
    it is converted into a :class:`~apix.extensions.models.FailedToStart`
    outcome so the bridge can still be torn down.
    """

    exit_code = EXIT_EXTENSION_NOT_STARTED


class ProxyForwardError(ExtensionError):
    """A single bridged request failed to reach the upstream API.

    Contained to that one request: the bridge answers it with
    ``502 Bad Gateway`` and keeps serving others.
    """

    exit_code = EXIT_CONNECTION_ERROR
