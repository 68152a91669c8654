"""Turns a profile's ``auth`` section into request credentials.

:class:`~apix.client.upstream.UpstreamClient` asks the manager once, when it
is entered; the resulting :class:`~apix.auth.base.AuthResult` is then
stamped onto every request, including everything an extension sends through
the bridge.
"""

from __future__ import annotations

from typing import Iterable

from apix.auth.base import AuthPlugin, AuthResult
from apix.exceptions import AuthError, ConfigError
from apix.models import Profile


class AuthManager:
    """Auth plugins keyed by the ``auth.type`` they handle.

    Example::

        manager = AuthManager([BearerAuthPlugin()])
        result = manager.authenticate(profile)
    """

    def __init__(self, plugins: Iterable[AuthPlugin] = ()) -> None:
        self._by_type: dict[str, AuthPlugin] = {}
        for plugin in plugins:
            self.register(plugin)

    @property
    def types(self) -> list[str]:
        return sorted(self._by_type)

    def register(self, plugin: AuthPlugin) -> None:
        self._by_type[plugin.auth_type] = plugin

    def plugin_for(self, auth_type: str) -> AuthPlugin:
        try:
            return self._by_type[auth_type]
        except KeyError:
            known = ", ".join(self.types) or "(none)"
            raise AuthError(
                f"No auth plugin registered for type '{auth_type}'. Available types: {known}"
            ) from None

    def authenticate(self, profile: Profile) -> AuthResult:
        """Credentials for *profile*; empty when it has no ``auth`` section.

        Raises:
            AuthError: Unknown type, an invalid auth section, or a credential
                source that cannot be read.
        """
        auth = profile.auth
        if auth is None:
            return AuthResult()
        plugin = self.plugin_for(auth.type)
        problems = plugin.validate_config(auth)
        if problems:
            raise AuthError(f"Invalid auth config for profile '{profile.name}': {'; '.join(problems)}")
        try:
            return plugin.authenticate(auth)
        except ConfigError as exc:
            raise AuthError(f"Cannot resolve credentials for '{profile.name}': {exc}") from exc


def create_default_manager() -> AuthManager:
    """A manager for the ``api_key``, ``basic`` and ``bearer`` auth types."""
    from apix.plugins.api_key import APIKeyAuthPlugin
    from apix.plugins.basic import BasicAuthPlugin
    from apix.plugins.bearer import BearerAuthPlugin

    return AuthManager([APIKeyAuthPlugin(), BasicAuthPlugin(), BearerAuthPlugin()])
