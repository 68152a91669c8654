"""Fixtures shared by the apix test suite.

Settings and data directories are redirected into ``tmp_path``; output state
is reset after every test; ``make_executable`` writes throwaway ``apix-*``
scripts; ``upstream_server`` is a loopback HTTP API that records what the
bridge forwards to it.
"""

from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable

import pytest

from apix.models import AuthConfig, Profile, RequestConfig
from apix.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Drop the process-wide OutputManager once a test is done.

    A manager built inside CliRunner holds the runner's swapped streams,
    which are closed after the invocation returns.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _no_http_proxy(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep loopback traffic in tests away from any configured HTTP proxy."""
    for var in ("HTTP_PROXY", "HTTPS_PROXY", "ALL_PROXY", "http_proxy", "https_proxy", "all_proxy"):
        monkeypatch.delenv(var, raising=False)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_DATA_HOME to subdirectories of tmp_path so
    that tests never touch real user config. Clears all APIX_* environment
    variables and changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["APIX_PROFILE", "APIX_BASE_URL", "APIX_API"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()


# ---------------------------------------------------------------------------
# Fake extension executables
# ---------------------------------------------------------------------------


@pytest.fixture
def make_executable() -> Callable[..., Path]:
    """Factory writing a POSIX shell script to *path*.

    Usage::

        script = make_executable(tmp_path / "bin" / "apix-hello", "exit 3")
    """

    def _make(path: Path, body: str = "exit 0", mode: int = 0o755, shebang: str = "#!/bin/sh") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"{shebang}\n{body}\n", encoding="utf-8")
        path.chmod(mode)
        return path

    return _make


# ---------------------------------------------------------------------------
# Upstream API stub
# ---------------------------------------------------------------------------


def _read_chunked(rfile: Any) -> bytes | None:
    """Read a chunked body; ``None`` if the sender went away part-way."""
    body = b""
    while True:
        line = rfile.readline()
        if not line:
            return None
        size = int(line.split(b";")[0].strip(), 16)
        if size == 0:
            rfile.readline()
            return body
        body += rfile.read(size)
        rfile.readline()


class _UpstreamHandler(BaseHTTPRequestHandler):
    """Records every request and answers according to its path.

    * ``/status/<code>`` -- respond with that status.
    * ``/stream`` -- respond without ``Content-Length`` (chunked).
    * ``/slow`` -- hold the response until ``server.release`` is set.
    * anything else -- echo the request back as JSON.
    """

    protocol_version = "HTTP/1.1"

    def __getattr__(self, name: str) -> Any:
        if name.startswith("do_"):
            return self._handle
        raise AttributeError(name)

    def log_message(self, format: str, *args: Any) -> None:
        pass

    def _handle(self) -> None:
        if "chunked" in self.headers.get("Transfer-Encoding", "").lower():
            body = _read_chunked(self.rfile)
            if body is None:
                self.close_connection = True
                return
        else:
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length else b""

        record = {
            "method": self.command,
            "path": self.path,
            "headers": {k.lower(): v for k, v in self.headers.items()},
            "body": body.decode("latin-1"),
        }
        self.server.requests.append(record)

        if self.path.startswith("/slow"):
            self.server.release.wait(timeout=60)

        if self.path.startswith("/stream"):
            self.send_response(200)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Transfer-Encoding", "chunked")
            self.end_headers()
            for i in range(3):
                chunk = f"chunk-{i};".encode()
                self.wfile.write(b"%X\r\n%s\r\n" % (len(chunk), chunk))
            self.wfile.write(b"0\r\n\r\n")
            return

        status = 200
        if self.path.startswith("/status/"):
            status = int(self.path.split("/")[2].split("?")[0])
            payload = json.dumps({"status": status}).encode()
        else:
            payload = json.dumps(record).encode()

        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("X-Upstream", "stub")
        if status not in (204, 304):
            self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if self.command != "HEAD" and status not in (204, 304):
            self.wfile.write(payload)


class _UpstreamServer(ThreadingHTTPServer):
    daemon_threads = True
    request_queue_size = 256


@pytest.fixture
def upstream_server():
    """A real HTTP server on 127.0.0.1 standing in for the upstream API.

    ``server.requests`` holds one dict per request received (method, path,
    lower-cased headers, body decoded as latin-1). Setting ``server.release``
    lets held ``/slow`` requests complete.
    """
    server = _UpstreamServer(("127.0.0.1", 0), _UpstreamHandler)
    server.requests = []
    server.release = threading.Event()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.release.set()
    server.shutdown()
    server.server_close()


@pytest.fixture
def upstream_url(upstream_server) -> str:
    return f"http://127.0.0.1:{upstream_server.server_address[1]}"


@pytest.fixture
def upstream_profile(upstream_url: str, monkeypatch: pytest.MonkeyPatch) -> Profile:
    """Profile pointing at :func:`upstream_server` with bearer auth and teams."""
    monkeypatch.setenv("APIX_TEST_TOKEN", "secret-token")
    return Profile(
        name="stub",
        base_url=upstream_url,
        auth=AuthConfig(type="bearer", source="env:APIX_TEST_TOKEN"),
        default_team="team_default",
        team="team_switched",
        request=RequestConfig(timeout=5),
    )
