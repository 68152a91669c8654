"""Bearer token authentication plugin.

A pre-existing token is resolved from the configured ``source`` (e.g.
``env:MY_TOKEN``, ``store:prod``) and sent as ``Authorization: Bearer
<token>``. No token exchange or refresh happens here.
"""

from __future__ import annotations

from apix.auth.base import AuthPlugin, AuthResult
from apix.config import resolve_credential
from apix.models import AuthConfig


class BearerAuthPlugin(AuthPlugin):
    """Authenticate via Bearer token in the Authorization header."""

    @property
    def auth_type(self) -> str:
        return "bearer"

    def authenticate(self, auth_config: AuthConfig) -> AuthResult:
        token = resolve_credential(auth_config.source)
        return AuthResult(headers={"Authorization": f"Bearer {token}"})

    def validate_config(self, auth_config: AuthConfig) -> list[str]:
        errors: list[str] = []
        if not auth_config.source:
            errors.append("Bearer auth requires a 'source' for the token")
        return errors
