"""Authenticated HTTP client for the upstream REST API.

This module provides :class:`UpstreamClient`, the single gateway through
which ``apix`` talks to the remote API. It wraps :class:`httpx.Client` and
layers on:

- **Auth injection** -- credentials from :class:`~apix.auth.base.AuthResult`
  are merged into every outgoing request, overriding any caller-supplied
  ``Authorization``-style header with the same name.
- **Team selection** -- a ``teamId`` query parameter scopes the request to
  an account context. Interactive commands use the profile's ``team``
  override; bridged extension traffic passes ``use_current_team=False`` and
  gets the profile's ``default_team`` instead.
- **Streaming** -- :meth:`UpstreamClient.stream` sends a request whose body
  may be an iterator of bytes and returns the response without reading its
  body, so large payloads pass through in bounded memory.
- **Error mapping** -- transport failures become
  :class:`~apix.exceptions.ConnectionError_`. HTTP error statuses are
  returned, never raised.

The underlying :class:`httpx.Client` connection pool is thread-safe, so one
``UpstreamClient`` can serve many concurrent bridge requests.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator, Optional, Union

import httpx

from apix.auth.base import AuthResult
from apix.auth.manager import AuthManager
from apix.exceptions import ConnectionError_
from apix.models import Profile
from apix.output import debug

TEAM_PARAM = "teamId"
"""Query parameter carrying the account/team context."""

KEEPALIVE_CONNECTIONS = 20
"""Idle upstream connections kept open for reuse."""

RequestContent = Union[bytes, Iterable[bytes], Iterator[bytes], None]
HeaderItems = Union[dict[str, str], list[tuple[str, str]], None]


class UpstreamClient:
    """HTTP client for the upstream API.

    Must be used as a context manager so that the underlying transport is
    opened (and credentials resolved) on entry and closed on exit.

    Args:
        profile: The connection profile containing ``base_url``, auth
            config, team context, and request settings.
        auth_manager: Optional manager that resolves credentials on entry.
            When ``None``, no auth is injected.
        transport: Optional custom httpx transport (tests use
            :class:`httpx.MockTransport`).

    Example::

        with UpstreamClient(profile, auth_manager=am) as client:
            response = client.request("GET", "/v2/user")
    """

    def __init__(
        self,
        profile: Profile,
        auth_manager: Optional[AuthManager] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._profile = profile
        self._auth_manager = auth_manager
        self._transport = transport
        self._auth_result: Optional[AuthResult] = None
        self._client: Optional[httpx.Client] = None

    @property
    def profile(self) -> Profile:
        return self._profile

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> UpstreamClient:
        config = self._profile.request
        timeout = httpx.Timeout(config.timeout or None)
        kwargs: dict[str, Any] = {
            "base_url": self._profile.base_url,
            "timeout": timeout,
            "verify": config.verify_ssl,
            # Redirects are relayed to the caller untouched.
            "follow_redirects": False,
            # Bridged requests are not queued behind a pool cap.
            "limits": httpx.Limits(
                max_connections=None,
                max_keepalive_connections=KEEPALIVE_CONNECTIONS,
            ),
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        if self._auth_manager and self._profile.auth:
            self._auth_result = self._auth_manager.authenticate(self._profile)
        self._client = httpx.Client(**kwargs)
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public request methods
    # ------------------------------------------------------------------ #

    def build_request(
        self,
        method: str,
        path: str,
        headers: HeaderItems = None,
        content: RequestContent = None,
        use_current_team: bool = True,
    ) -> httpx.Request:
        """Build an authenticated :class:`httpx.Request` for *path*.

        *path* may carry its own query string; it is kept byte for byte and the
        auth and team parameters are appended after it. Leading slashes are collapsed so that a path can never
        be read as an absolute or scheme-relative URL and leave ``base_url``.
        """
        client = self._require_client()
        merged_headers = httpx.Headers(headers or {})
        params: dict[str, str] = {}

        team = self._select_team(use_current_team)
        if team:
            params[TEAM_PARAM] = team

        if self._auth_result is not None:
            for key, value in self._auth_result.headers.items():
                merged_headers[key] = value
            params.update(self._auth_result.params)
            if self._auth_result.cookies:
                cookie_str = "; ".join(
                    f"{k}={v}" for k, v in self._auth_result.cookies.items()
                )
                existing = merged_headers.get("Cookie")
                if existing:
                    cookie_str = f"{existing}; {cookie_str}"
                merged_headers["Cookie"] = cookie_str

        return client.build_request(
            method,
            _append_query("/" + path.lstrip("/"), params),
            headers=merged_headers,
            content=content,
        )

    def stream(
        self,
        method: str,
        path: str,
        headers: HeaderItems = None,
        content: RequestContent = None,
        use_current_team: bool = True,
    ) -> httpx.Response:
        """Send a request and return the response with its body unread.

        The caller owns the returned response and must call ``close()`` on
        it (or iterate it to completion) to release the connection.

        Raises:
            ConnectionError_: On network or timeout failures.
        """
        request = self.build_request(method, path, headers, content, use_current_team)
        debug(f"upstream {method} {request.url.copy_with(query=None)}")
        try:
            return self._require_client().send(request, stream=True)
        except httpx.TransportError as exc:
            raise ConnectionError_(f"Upstream request failed: {exc!r}") from exc

    def request(
        self,
        method: str,
        path: str,
        headers: HeaderItems = None,
        content: RequestContent = None,
        use_current_team: bool = True,
    ) -> httpx.Response:
        """Send a request and return the fully read response.

        Raises:
            ConnectionError_: On network or timeout failures.
        """
        response = self.stream(method, path, headers, content, use_current_team)
        try:
            response.read()
        except httpx.TransportError as exc:
            raise ConnectionError_(f"Upstream request failed: {exc!r}") from exc
        finally:
            response.close()
        return response

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _select_team(self, use_current_team: bool) -> Optional[str]:
        if use_current_team and self._profile.team:
            return self._profile.team
        return self._profile.default_team

    def _require_client(self) -> httpx.Client:
        assert self._client is not None, "Client not initialised -- use as context manager"
        return self._client


def _append_query(path: str, params: dict[str, str]) -> str:
    """Append encoded *params* to *path* without re-encoding its query.

    httpx rebuilds the whole query string when ``params=`` is given, which
    would drop bare keys and repeated keys from the caller's query.
    """
    if not params:
        return path
    encoded = str(httpx.QueryParams(params))
    if "?" not in path:
        return f"{path}?{encoded}"
    if path.endswith(("?", "&")):
        return path + encoded
    return f"{path}&{encoded}"
