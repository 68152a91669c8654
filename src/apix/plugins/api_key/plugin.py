"""API key auth plugin -- header, query parameter, or cookie placement.

Resolves a key from the configured ``source`` (e.g. ``env:MY_API_KEY``) and
places it at the configured ``location``.

See Also:
    :func:`apix.config.resolve_credential` for how ``source`` values
    are resolved.
"""

from __future__ import annotations

from apix.auth.base import AuthPlugin, AuthResult
from apix.config import resolve_credential
from apix.models import AuthConfig

_LOCATIONS = ("header", "query", "cookie")


class APIKeyAuthPlugin(AuthPlugin):
    """Authenticate via an API key placed in a header, query parameter, or cookie.

    The key name comes from ``auth_config.header`` (header/cookie) or
    ``auth_config.param_name`` (query), with ``X-API-Key`` / ``api_key``
    as fallbacks.
    """

    @property
    def auth_type(self) -> str:
        return "api_key"

    def authenticate(self, auth_config: AuthConfig) -> AuthResult:
        credential = resolve_credential(auth_config.source)
        location = auth_config.location

        if location == "query":
            key_name = auth_config.param_name or auth_config.header or "api_key"
            return AuthResult(params={key_name: credential})

        if location == "cookie":
            key_name = auth_config.header or auth_config.param_name or "api_key"
            return AuthResult(cookies={key_name: credential})

        key_name = auth_config.header or auth_config.param_name or "X-API-Key"
        return AuthResult(headers={key_name: credential})

    def validate_config(self, auth_config: AuthConfig) -> list[str]:
        errors: list[str] = []
        if not auth_config.source:
            errors.append("API key auth requires a 'source' for the credential")
        if auth_config.location not in _LOCATIONS:
            errors.append(
                f"Invalid location '{auth_config.location}': "
                "must be 'header', 'query', or 'cookie'"
            )
        return errors
