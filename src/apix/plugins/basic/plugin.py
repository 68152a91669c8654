"""HTTP Basic authentication plugin.

The credential ``source`` must resolve to ``"username:password"``, which is
Base64-encoded into an ``Authorization: Basic <encoded>`` header per
:rfc:`7617`.
"""

from __future__ import annotations

import base64

from apix.auth.base import AuthPlugin, AuthResult
from apix.config import resolve_credential
from apix.exceptions import AuthError
from apix.models import AuthConfig


class BasicAuthPlugin(AuthPlugin):
    """Authenticate via HTTP Basic authentication."""

    @property
    def auth_type(self) -> str:
        return "basic"

    def authenticate(self, auth_config: AuthConfig) -> AuthResult:
        """Resolve ``username:password`` and return a Basic auth header.

        Raises:
            AuthError: If the resolved credential has no colon separator.
        """
        raw = resolve_credential(auth_config.source)
        if ":" not in raw:
            raise AuthError(
                "Basic auth credential must be in 'username:password' format "
                "(colon separator is required)"
            )
        encoded = base64.b64encode(raw.encode("utf-8")).decode("ascii")
        return AuthResult(headers={"Authorization": f"Basic {encoded}"})

    def validate_config(self, auth_config: AuthConfig) -> list[str]:
        if not auth_config.source:
            return ["Basic auth requires a 'source' for the credential"]
        return []
