"""HTTP client module for apix.

:class:`UpstreamClient` wraps :mod:`httpx` with auth injection, team
selection, and streaming, and is shared by interactive commands and the
extension API bridge.

Example::

    from apix.client import UpstreamClient

    with UpstreamClient(profile, auth_manager=manager) as client:
        resp = client.request("GET", "/v2/user")
"""

from apix.client.upstream import UpstreamClient

__all__ = ["UpstreamClient"]
