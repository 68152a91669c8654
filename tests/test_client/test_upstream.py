"""Tests for the upstream API client."""

from __future__ import annotations

import httpx
import pytest

from apix.auth import create_default_manager
from apix.client.upstream import TEAM_PARAM, UpstreamClient
from apix.exceptions import AuthError, ConnectionError_
from apix.models import AuthConfig, Profile, RequestConfig
from apix.output import OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_profile(
    base_url: str = "https://api.example.com",
    auth: AuthConfig | None = None,
    team: str | None = None,
    default_team: str | None = None,
    timeout: int = 30,
) -> Profile:
    return Profile(
        name="test",
        base_url=base_url,
        auth=auth,
        team=team,
        default_team=default_team,
        request=RequestConfig(timeout=timeout),
    )


def _capture(seen: list[httpx.Request], status_code: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status_code, json={"ok": True})

    return httpx.MockTransport(handler)


@pytest.fixture(autouse=True)
def _clean_output():
    set_output(OutputManager(no_color=True, quiet=True))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Context manager
# ---------------------------------------------------------------------------


class TestContextManager:
    def test_enter_creates_and_exit_closes_client(self) -> None:
        client = UpstreamClient(_make_profile())
        assert client._client is None
        with client:
            assert client._client is not None
        assert client._client is None

    def test_request_outside_context_fails(self) -> None:
        client = UpstreamClient(_make_profile())
        with pytest.raises(AssertionError):
            client.request("GET", "/")

    def test_auth_failure_raised_on_enter(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MISSING_TOKEN", raising=False)
        profile = _make_profile(auth=AuthConfig(type="bearer", source="env:MISSING_TOKEN"))
        client = UpstreamClient(profile, auth_manager=create_default_manager())
        with pytest.raises(AuthError):
            client.__enter__()
        assert client._client is None


# ---------------------------------------------------------------------------
# Request building
# ---------------------------------------------------------------------------


class TestAuthInjection:
    def test_bearer_header_added(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOKEN", "tok123")
        seen: list[httpx.Request] = []
        profile = _make_profile(auth=AuthConfig(type="bearer", source="env:TOKEN"))

        with UpstreamClient(profile, create_default_manager(), transport=_capture(seen)) as client:
            client.request("GET", "/v1/items")

        assert seen[0].headers["authorization"] == "Bearer tok123"

    def test_auth_overrides_caller_header(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TOKEN", "real")
        seen: list[httpx.Request] = []
        profile = _make_profile(auth=AuthConfig(type="bearer", source="env:TOKEN"))

        with UpstreamClient(profile, create_default_manager(), transport=_capture(seen)) as client:
            client.request("GET", "/", headers={"Authorization": "Bearer forged"})

        assert seen[0].headers.get_list("authorization") == ["Bearer real"]

    def test_api_key_query_param(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KEY", "k-1")
        seen: list[httpx.Request] = []
        profile = _make_profile(
            auth=AuthConfig(type="api_key", location="query", param_name="api_key", source="env:KEY")
        )

        with UpstreamClient(profile, create_default_manager(), transport=_capture(seen)) as client:
            client.request("GET", "/search?q=x")

        assert seen[0].url.params["api_key"] == "k-1"
        assert seen[0].url.params["q"] == "x"

    def test_api_key_cookie_merges_with_existing(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KEY", "k-2")
        seen: list[httpx.Request] = []
        profile = _make_profile(
            auth=AuthConfig(type="api_key", location="cookie", param_name="session", source="env:KEY")
        )

        with UpstreamClient(profile, create_default_manager(), transport=_capture(seen)) as client:
            client.request("GET", "/", headers={"Cookie": "theme=dark"})

        assert seen[0].headers["cookie"] == "theme=dark; session=k-2"

    def test_no_auth_manager_sends_no_credentials(self) -> None:
        seen: list[httpx.Request] = []
        profile = _make_profile(auth=AuthConfig(type="bearer", source="env:UNUSED"))

        with UpstreamClient(profile, transport=_capture(seen)) as client:
            client.request("GET", "/")

        assert "authorization" not in seen[0].headers


class TestTeamSelection:
    def test_current_team_used_by_default(self) -> None:
        seen: list[httpx.Request] = []
        profile = _make_profile(team="t_switched", default_team="t_default")

        with UpstreamClient(profile, transport=_capture(seen)) as client:
            client.request("GET", "/")

        assert seen[0].url.params[TEAM_PARAM] == "t_switched"

    def test_default_team_when_not_using_current(self) -> None:
        seen: list[httpx.Request] = []
        profile = _make_profile(team="t_switched", default_team="t_default")

        with UpstreamClient(profile, transport=_capture(seen)) as client:
            client.request("GET", "/", use_current_team=False)

        assert seen[0].url.params[TEAM_PARAM] == "t_default"

    def test_falls_back_to_default_team(self) -> None:
        seen: list[httpx.Request] = []

        with UpstreamClient(_make_profile(default_team="t_default"), transport=_capture(seen)) as client:
            client.request("GET", "/")

        assert seen[0].url.params[TEAM_PARAM] == "t_default"

    def test_no_team_no_param(self) -> None:
        seen: list[httpx.Request] = []

        with UpstreamClient(_make_profile(), transport=_capture(seen)) as client:
            client.request("GET", "/things?limit=5")

        assert TEAM_PARAM not in seen[0].url.params
        assert seen[0].url.params["limit"] == "5"


class TestQueryString:
    def test_caller_query_kept_verbatim_before_team(self) -> None:
        seen: list[httpx.Request] = []

        with UpstreamClient(_make_profile(default_team="t1"), transport=_capture(seen)) as client:
            client.request("GET", "/q?flag&x=a%2Fb&y=%7E", use_current_team=False)

        assert seen[0].url.raw_path == b"/q?flag&x=a%2Fb&y=%7E&teamId=t1"

    def test_repeated_keys_and_plus_kept(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KEY", "k 3")
        seen: list[httpx.Request] = []
        profile = _make_profile(
            default_team="t1",
            auth=AuthConfig(type="api_key", location="query", param_name="api_key", source="env:KEY"),
        )

        with UpstreamClient(profile, create_default_manager(), transport=_capture(seen)) as client:
            client.request("GET", "/q?x=1&x=2&y=a+b")

        raw = seen[0].url.raw_path
        assert raw.startswith(b"/q?x=1&x=2&y=a+b&")
        assert seen[0].url.params.get_list("x") == ["1", "2"]
        assert seen[0].url.params["teamId"] == "t1"
        assert seen[0].url.params["api_key"] == "k 3"

    def test_trailing_question_mark(self) -> None:
        seen: list[httpx.Request] = []

        with UpstreamClient(_make_profile(default_team="t1"), transport=_capture(seen)) as client:
            client.request("GET", "/q?")

        assert seen[0].url.raw_path == b"/q?teamId=t1"

    def test_query_untouched_without_params(self) -> None:
        seen: list[httpx.Request] = []

        with UpstreamClient(_make_profile(), transport=_capture(seen)) as client:
            client.request("GET", "/q?flag&x=a%2Fb")

        assert seen[0].url.raw_path == b"/q?flag&x=a%2Fb"


class TestPaths:
    def test_relative_to_base_url_path(self) -> None:
        seen: list[httpx.Request] = []

        with UpstreamClient(_make_profile("https://api.example.com/v2"), transport=_capture(seen)) as client:
            client.request("GET", "/users/me")

        assert str(seen[0].url) == "https://api.example.com/v2/users/me"

    def test_scheme_relative_path_stays_on_base_host(self) -> None:
        seen: list[httpx.Request] = []

        with UpstreamClient(_make_profile(), transport=_capture(seen)) as client:
            client.request("GET", "//evil.example.net/steal")

        assert seen[0].url.host == "api.example.com"
        assert seen[0].url.path == "/evil.example.net/steal"


# ---------------------------------------------------------------------------
# Responses and errors
# ---------------------------------------------------------------------------


class TestResponses:
    def test_error_status_returned_not_raised(self) -> None:
        seen: list[httpx.Request] = []

        with UpstreamClient(_make_profile(), transport=_capture(seen, 404)) as client:
            response = client.request("GET", "/missing")

        assert response.status_code == 404
        assert response.json() == {"ok": True}

    def test_redirect_not_followed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"Location": "https://elsewhere.example.com/"})

        with UpstreamClient(_make_profile(), transport=httpx.MockTransport(handler)) as client:
            response = client.request("GET", "/")

        assert response.status_code == 302

    def test_stream_returns_unread_response(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"abcdef")

        with UpstreamClient(_make_profile(), transport=httpx.MockTransport(handler)) as client:
            response = client.stream("GET", "/")
            try:
                assert b"".join(response.iter_raw()) == b"abcdef"
            finally:
                response.close()

    def test_streamed_request_body(self) -> None:
        seen: list[httpx.Request] = []

        def body():
            yield b"part1-"
            yield b"part2"

        with UpstreamClient(_make_profile(), transport=_capture(seen)) as client:
            client.request("POST", "/upload", content=body())

        assert seen[0].read() == b"part1-part2"

    def test_transport_error_maps_to_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with UpstreamClient(_make_profile(), transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ConnectionError_, match="Upstream request failed"):
                client.request("GET", "/")

    def test_timeout_maps_to_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with UpstreamClient(_make_profile(), transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ConnectionError_):
                client.request("GET", "/")
