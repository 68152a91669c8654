"""Tests for the extension invocation lifecycle."""

from __future__ import annotations

import json
import os
import socket
import sys
from pathlib import Path
from typing import Callable
from unittest.mock import MagicMock

import pytest

from apix.auth import create_default_manager
from apix.client.upstream import UpstreamClient
from apix.exceptions import ExtensionError, ExtensionNotFoundError, ProxyBindError
from apix.extensions.invocation import ExtensionInvocationRunner, invoke_extension
from apix.extensions.models import (
    ExtensionInvocation,
    Exited,
    FailedToStart,
    InvocationState,
    ProxyState,
)
from apix.extensions.proxy import ProxyBridge
from apix.extensions.resolver import ExtensionResolver

S = InvocationState
HAPPY_PATH = [S.IDLE, S.RESOLVING, S.PROXYING, S.SPAWNING, S.RUNNING, S.DRAINING, S.DONE]


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock(spec=UpstreamClient)
    mock.__enter__.return_value = mock
    mock.__exit__.return_value = False
    return mock


@pytest.fixture
def project(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    (root / "package.json").write_text("{}")
    return root


@pytest.fixture
def global_bin(tmp_path: Path) -> Path:
    path = tmp_path / "global-bin"
    path.mkdir()
    return path


@pytest.fixture
def resolver(global_bin: Path) -> ExtensionResolver:
    return ExtensionResolver(search_path=str(global_bin))


@pytest.fixture
def bridges(monkeypatch: pytest.MonkeyPatch) -> list[ProxyBridge]:
    """Record every bridge the runner creates."""
    created: list[ProxyBridge] = []

    class RecordingBridge(ProxyBridge):
        def __init__(self, *args: object, **kwargs: object) -> None:
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr("apix.extensions.invocation.ProxyBridge", RecordingBridge)
    return created


class TestLifecycle:
    def test_local_extension_happy_path(
        self,
        client: MagicMock,
        resolver: ExtensionResolver,
        project: Path,
        make_executable: Callable[..., Path],
        bridges: list[ProxyBridge],
        quiet_output,
    ) -> None:
        make_executable(project / "node_modules" / ".bin" / "apix-build")
        runner = ExtensionInvocationRunner(client, resolver=resolver)

        code = runner.invoke(ExtensionInvocation(name="build", cwd=project))

        assert code == 0
        assert runner.transitions == HAPPY_PATH
        assert runner.state is S.DONE
        assert runner.outcome == Exited(code=0)
        client.__enter__.assert_called_once()
        client.__exit__.assert_called_once()
        assert len(bridges) == 1
        assert bridges[0].session.state is ProxyState.CLOSED

    def test_exit_code_propagated(
        self,
        client: MagicMock,
        resolver: ExtensionResolver,
        project: Path,
        global_bin: Path,
        make_executable: Callable[..., Path],
        quiet_output,
    ) -> None:
        make_executable(global_bin / "apix-deploy", "exit 42")
        runner = ExtensionInvocationRunner(client, resolver=resolver)

        assert runner.invoke(ExtensionInvocation(name="deploy", cwd=project)) == 42
        assert runner.transitions == HAPPY_PATH

    @pytest.mark.parametrize("exit_code", [0, 3])
    def test_port_released_and_rebindable(
        self,
        client: MagicMock,
        resolver: ExtensionResolver,
        project: Path,
        global_bin: Path,
        make_executable: Callable[..., Path],
        bridges: list[ProxyBridge],
        quiet_output,
        exit_code: int,
    ) -> None:
        make_executable(global_bin / "apix-deploy", f"exit {exit_code}")

        first = ExtensionInvocationRunner(client, resolver=resolver)
        assert first.invoke(ExtensionInvocation(name="deploy", cwd=project)) == exit_code
        port = bridges[0].session.port

        with pytest.raises(ConnectionRefusedError):
            socket.create_connection(("127.0.0.1", port), timeout=2).close()

        second = ExtensionInvocationRunner(client, resolver=resolver)
        assert second.invoke(ExtensionInvocation(name="deploy", cwd=project)) == exit_code
        assert bridges[1].session.port != 0
        assert bridges[1].session.state is ProxyState.CLOSED

    def test_not_found_touches_nothing(
        self,
        client: MagicMock,
        resolver: ExtensionResolver,
        project: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        bridge_cls = MagicMock()
        run = MagicMock()
        monkeypatch.setattr("apix.extensions.invocation.ProxyBridge", bridge_cls)
        monkeypatch.setattr("apix.extensions.invocation.run_extension", run)
        runner = ExtensionInvocationRunner(client, resolver=resolver)

        with pytest.raises(ExtensionNotFoundError) as exc_info:
            runner.invoke(ExtensionInvocation(name="missing", cwd=project))

        assert exc_info.value.exit_code == 127
        assert runner.transitions == [S.IDLE, S.RESOLVING, S.NOT_FOUND]
        assert runner.outcome is None
        client.__enter__.assert_not_called()
        bridge_cls.assert_not_called()
        run.assert_not_called()

    def test_spawn_failure_skips_running(
        self,
        client: MagicMock,
        resolver: ExtensionResolver,
        project: Path,
        make_executable: Callable[..., Path],
        bridges: list[ProxyBridge],
        quiet_output,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        make_executable(project / "node_modules" / ".bin" / "apix-build", mode=0o644)
        runner = ExtensionInvocationRunner(client, resolver=resolver)

        code = runner.invoke(ExtensionInvocation(name="build", cwd=project))

        assert code == 126
        assert isinstance(runner.outcome, FailedToStart)
        assert runner.transitions == [S.IDLE, S.RESOLVING, S.PROXYING, S.SPAWNING, S.DRAINING, S.DONE]
        assert bridges[0].session.state is ProxyState.CLOSED
        assert "permission denied" in capsys.readouterr().err

    def test_bind_failure_spawns_nothing(
        self,
        client: MagicMock,
        resolver: ExtensionResolver,
        project: Path,
        make_executable: Callable[..., Path],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        make_executable(project / "node_modules" / ".bin" / "apix-build")
        bridge_cls = MagicMock()
        bridge_cls.return_value.start.side_effect = ProxyBindError("Cannot start extension API bridge")
        run = MagicMock()
        monkeypatch.setattr("apix.extensions.invocation.ProxyBridge", bridge_cls)
        monkeypatch.setattr("apix.extensions.invocation.run_extension", run)
        runner = ExtensionInvocationRunner(client, resolver=resolver)

        with pytest.raises(ProxyBindError) as exc_info:
            runner.invoke(ExtensionInvocation(name="build", cwd=project))

        assert exc_info.value.exit_code == 8
        run.assert_not_called()
        client.__exit__.assert_called_once()
        assert runner.state is S.PROXYING

    def test_single_use(
        self,
        client: MagicMock,
        resolver: ExtensionResolver,
        project: Path,
        global_bin: Path,
        make_executable: Callable[..., Path],
        quiet_output,
    ) -> None:
        make_executable(global_bin / "apix-deploy")
        runner = ExtensionInvocationRunner(client, resolver=resolver)
        runner.invoke(ExtensionInvocation(name="deploy", cwd=project))

        with pytest.raises(ExtensionError, match="only be used once"):
            runner.invoke(ExtensionInvocation(name="deploy", cwd=project))

    def test_invoke_extension_uses_path(
        self,
        client: MagicMock,
        project: Path,
        global_bin: Path,
        make_executable: Callable[..., Path],
        monkeypatch: pytest.MonkeyPatch,
        quiet_output,
    ) -> None:
        make_executable(global_bin / "apix-deploy", "exit 5")
        monkeypatch.setenv("PATH", f"{global_bin}{os.pathsep}/usr/bin{os.pathsep}/bin")

        assert invoke_extension(client, "deploy", ["--dry-run"], project) == 5


class TestEndToEnd:
    def test_extension_reaches_upstream_through_bridge(
        self,
        upstream_profile,
        upstream_server,
        resolver: ExtensionResolver,
        project: Path,
        global_bin: Path,
        make_executable: Callable[..., Path],
        tmp_path: Path,
        quiet_output,
    ) -> None:
        out = tmp_path / "response.json"
        body = "\n".join(
            [
                "import os, sys, urllib.request",
                "opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))",
                "req = urllib.request.Request(",
                "    os.environ['APIX_API'] + '/v1/deployments?env=prod',",
                "    data=b'{\"ref\": \"main\"}',",
                "    method='POST',",
                "    headers={'Content-Type': 'application/json'},",
                ")",
                "with opener.open(req) as resp:",
                "    open(sys.argv[1], 'wb').write(resp.read())",
                "sys.exit(7)",
            ]
        )
        make_executable(global_bin / "apix-deploy", body, shebang=f"#!{sys.executable}")
        client = UpstreamClient(upstream_profile, auth_manager=create_default_manager())
        runner = ExtensionInvocationRunner(client, resolver=resolver, base_env=dict(os.environ))

        code = runner.invoke(ExtensionInvocation(name="deploy", args=(str(out),), cwd=project))

        assert code == 7
        assert runner.transitions == HAPPY_PATH
        echoed = json.loads(out.read_text())
        assert echoed["method"] == "POST"
        assert echoed["path"].startswith("/v1/deployments?")
        assert "env=prod" in echoed["path"]
        assert "teamId=team_default" in echoed["path"]
        assert echoed["headers"]["authorization"] == "Bearer secret-token"
        assert echoed["body"] == '{"ref": "main"}'
        assert len(upstream_server.requests) == 1
