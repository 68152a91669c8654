"""Bearer token authentication plugin (``bearer`` auth type)."""

from apix.plugins.bearer.plugin import BearerAuthPlugin

__all__ = ["BearerAuthPlugin"]
