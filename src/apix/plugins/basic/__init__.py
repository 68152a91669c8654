"""HTTP Basic authentication plugin (``basic`` auth type)."""

from apix.plugins.basic.plugin import BasicAuthPlugin

__all__ = ["BasicAuthPlugin"]
