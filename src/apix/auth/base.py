"""Abstract base class for authentication plugins.

- :class:`AuthResult` -- the headers, query parameters, and cookies an auth
  plugin produces.
- :class:`AuthPlugin` -- the interface every authentication strategy
  implements.

See Also:
    :mod:`apix.auth.manager` for plugin registration and dispatch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from apix.models import AuthConfig


class AuthResult:
    """Container for authentication artifacts to inject into HTTP requests.

    Merged into every outgoing request by
    :class:`~apix.client.upstream.UpstreamClient`, including requests bridged
    on behalf of extensions.

    Args:
        headers: HTTP headers to add (e.g. ``{"Authorization": "Bearer ..."}``).
        params: Query-string parameters to add (e.g. ``{"api_key": "..."}``).
        cookies: Cookies to add (serialised into a ``Cookie`` header by the client).
    """

    def __init__(
        self,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        cookies: dict[str, str] | None = None,
    ):
        self.headers = headers or {}
        self.params = params or {}
        self.cookies = cookies or {}

    def is_empty(self) -> bool:
        return not (self.headers or self.params or self.cookies)


class AuthPlugin(ABC):
    """Abstract base class for authentication plugins.

    Subclasses provide an :attr:`auth_type` identifier and an
    :meth:`authenticate` implementation that turns an
    :class:`~apix.models.AuthConfig` into an :class:`AuthResult`.
    """

    @property
    @abstractmethod
    def auth_type(self) -> str:
        """Return the unique auth type identifier this plugin handles."""
        ...

    @abstractmethod
    def authenticate(self, auth_config: AuthConfig) -> AuthResult:
        """Resolve credentials and return auth artifacts for HTTP requests.

        Raises:
            AuthError: If credentials cannot be resolved or are invalid.
        """
        ...

    def validate_config(self, auth_config: AuthConfig) -> list[str]:
        """Return human-readable problems with *auth_config* (empty when valid)."""
        return []
