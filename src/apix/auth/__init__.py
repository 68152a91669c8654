"""Plugin-based authentication for upstream API requests.

Credentials are resolved here, inside the ``apix`` process, and merged into
outgoing requests by :class:`~apix.client.upstream.UpstreamClient`. They are
never placed in an extension's environment.

The main entry points are:

- :class:`AuthPlugin` -- abstract base class for auth strategies.
- :class:`AuthManager` -- registry that maps auth type strings to plugin
  instances and authenticates a :class:`~apix.models.Profile`.
- :func:`create_default_manager` -- an :class:`AuthManager` pre-loaded with
  the built-in ``api_key``, ``bearer`` and ``basic`` plugins.
- :class:`CredentialStore` -- persistent, per-profile credential storage.
"""

from apix.auth.base import AuthPlugin, AuthResult
from apix.auth.credential_store import CredentialEntry, CredentialStore
from apix.auth.manager import AuthManager, create_default_manager

__all__ = [
    "AuthPlugin",
    "AuthResult",
    "AuthManager",
    "CredentialEntry",
    "CredentialStore",
    "create_default_manager",
]
