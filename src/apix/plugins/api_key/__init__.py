"""API key authentication plugin (``api_key`` auth type)."""

from apix.plugins.api_key.plugin import APIKeyAuthPlugin

__all__ = ["APIKeyAuthPlugin"]
