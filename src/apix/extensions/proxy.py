"""Loopback HTTP bridge between an extension and the upstream API.

While an extension runs, ``apix`` listens on ``127.0.0.1`` at an OS-assigned
port and forwards every request it receives to the upstream API through
:class:`~apix.client.upstream.UpstreamClient`, which adds the user's
credentials. The extension only ever learns the bridge URL.

Forwarding rules:

* Method, path (with query string), and headers are copied. ``Host`` is
  dropped, as are hop-by-hop headers, which describe the local connection
  and are re-framed by each side.
* ``GET`` and ``HEAD`` never carry a body upstream. For other methods the
  inbound body is streamed upstream chunk by chunk.
* Requests run with the user's default team, never the ``team switch``
  override (``use_current_team=False``).
* The upstream status, headers, and body are relayed back unchanged; the
  body is copied chunk by chunk, each write completing before the next read,
  so a slow reader slows the upstream read instead of growing a buffer.
* A request that cannot reach upstream gets ``502 Bad Gateway``. Nothing else
  is affected.

Each connection is handled on its own daemon thread
(:class:`http.server.ThreadingHTTPServer`), so slow or failing requests
never hold up the others.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Iterator, Optional

import httpx

from apix.client.upstream import UpstreamClient
from apix.exceptions import ConnectionError_, ExtensionError, ProxyBindError, ProxyForwardError
from apix.extensions.models import ProxySession, ProxyState
from apix.output import debug

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"
CHUNK_SIZE = 64 * 1024

HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

BODYLESS_METHODS = frozenset({"GET", "HEAD"})

Forwarder = Callable[[str, str, list[tuple[str, str]], Optional[Iterator[bytes]]], httpx.Response]


class MalformedBodyError(ValueError):
    """The inbound request body is not validly framed."""


def _chunk_size(line: bytes) -> int:
    try:
        size = int(line.split(b";", 1)[0].strip(), 16)
    except ValueError:
        raise MalformedBodyError(f"invalid chunk size line {line!r}") from None
    if size < 0:
        raise MalformedBodyError(f"invalid chunk size line {line!r}")
    return size


class _BodyReader:
    """Incremental reader for an inbound request body.

    Handles ``Content-Length`` and ``Transfer-Encoding: chunked`` framing.
    ``exhausted`` is true once the full body has been consumed, which tells
    the handler whether the connection can be reused.
    """

    def __init__(self, rfile: Any, content_length: Optional[int], chunked: bool) -> None:
        self._rfile = rfile
        self._remaining = content_length or 0
        self._chunked = chunked
        self.exhausted = not chunked and not self._remaining

    def __iter__(self) -> Iterator[bytes]:
        if self._chunked:
            yield from self._iter_chunked()
        else:
            yield from self._iter_length()

    def drain(self) -> None:
        for _ in self:
            pass

    def _iter_length(self) -> Iterator[bytes]:
        while self._remaining > 0:
            data = self._rfile.read(min(CHUNK_SIZE, self._remaining))
            if not data:
                raise ConnectionResetError("client closed connection mid-body")
            self._remaining -= len(data)
            yield data
        self.exhausted = True

    def _iter_chunked(self) -> Iterator[bytes]:
        while not self.exhausted:
            size_line = self._rfile.readline(1024)
            if not size_line:
                raise ConnectionResetError("client closed connection mid-body")
            size = _chunk_size(size_line)
            if size == 0:
                # Trailer section ends with an empty line.
                while self._rfile.readline(1024) not in (b"\r\n", b"\n", b""):
                    pass
                self.exhausted = True
                return
            remaining = size
            while remaining > 0:
                data = self._rfile.read(min(CHUNK_SIZE, remaining))
                if not data:
                    raise ConnectionResetError("client closed connection mid-body")
                remaining -= len(data)
                yield data
            self._rfile.readline(1024)


class BridgeRequestHandler(BaseHTTPRequestHandler):
    """Forwards each inbound request to the upstream API.

    Any HTTP method is accepted: ``do_<METHOD>`` lookups from
    :class:`~http.server.BaseHTTPRequestHandler` all resolve to
    :meth:`forward`.
    """

    protocol_version = "HTTP/1.1"
    server_version = "apix-bridge"
    server: _BridgeServer

    def __getattr__(self, name: str) -> Any:
        if name.startswith("do_"):
            return self.forward
        raise AttributeError(name)

    def forward(self) -> None:
        method = self.command
        headers = [
            (key, value)
            for key, value in self.headers.items()
            if key.lower() != "host" and key.lower() not in HOP_BY_HOP_HEADERS
        ]

        try:
            reader = self._body_reader()
            body: Optional[Iterator[bytes]] = None
            if method in BODYLESS_METHODS:
                reader.drain()
            elif not reader.exhausted:
                body = iter(reader)
            if body is None:
                headers = [(key, value) for key, value in headers if key.lower() != "content-length"]
            upstream = self.server.forward(method, self.path, headers, body)
        except MalformedBodyError as exc:
            # The body may be partly consumed; the connection cannot be reused.
            logger.warning("bridge %s %s rejected: %s", method, self.path, exc)
            self._send_error_json(400, "bad_request", f"Malformed request body framing: {exc}")
            self.close_connection = True
            return
        except ProxyForwardError as exc:
            logger.warning("bridge %s %s failed: %s", method, self.path, exc)
            debug(f"bridge {method} {self.path} -> 502 ({exc})")
            self._send_error_json(502, "proxy_error", str(exc))
            if not reader.exhausted:
                self.close_connection = True
            return

        try:
            debug(f"bridge {method} {self.path} -> {upstream.status_code}")
            self._relay(upstream, head_only=(method == "HEAD"))
        finally:
            upstream.close()
        if not reader.exhausted:
            self.close_connection = True

    def log_message(self, format: str, *args: Any) -> None:
        debug(f"bridge: {format % args}")

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _body_reader(self) -> _BodyReader:
        chunked = "chunked" in self.headers.get("Transfer-Encoding", "").lower()
        length_header = self.headers.get("Content-Length")
        content_length = None
        if length_header is not None and not chunked:
            try:
                content_length = int(length_header)
            except ValueError:
                raise MalformedBodyError(f"invalid Content-Length {length_header!r}") from None
            if content_length < 0:
                raise MalformedBodyError("negative Content-Length")
        return _BodyReader(self.rfile, content_length, chunked)

    def _relay(self, upstream: httpx.Response, head_only: bool) -> None:
        status = upstream.status_code
        self.send_response_only(status, upstream.reason_phrase or None)
        for key, value in upstream.headers.multi_items():
            if key.lower() in HOP_BY_HOP_HEADERS:
                continue
            self.send_header(key, value)

        no_body = head_only or status in (204, 304) or 100 <= status < 200
        length = upstream.headers.get("Content-Length")
        chunked = not no_body and length is None
        if chunked:
            self.send_header("Transfer-Encoding", "chunked")
        self.end_headers()
        if no_body:
            return

        try:
            for chunk in upstream.iter_raw():
                if not chunk:
                    continue
                if chunked:
                    self.wfile.write(b"%X\r\n%s\r\n" % (len(chunk), chunk))
                else:
                    self.wfile.write(chunk)
            if chunked:
                self.wfile.write(b"0\r\n\r\n")
        except httpx.HTTPError as exc:
            # Headers are already out, so the only signal left is a short body.
            logger.warning("bridge upstream stream broke for %s: %s", self.path, exc)
            self.close_connection = True
        except OSError:
            # Extension went away mid-response.
            self.close_connection = True

    def _send_error_json(self, status: int, code: str, message: str) -> None:
        payload = json.dumps({"error": {"code": code, "message": message}}).encode("utf-8")
        self.send_response_only(status)
        self.send_header("Content-Type", "application/json; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(payload)


class _BridgeServer(ThreadingHTTPServer):
    daemon_threads = True
    request_queue_size = 128
    allow_reuse_address = False

    def __init__(self, address: tuple[str, int], forward: Forwarder) -> None:
        self.forward = forward
        self._connections: set[socket.socket] = set()
        self._connections_lock = threading.Lock()
        super().__init__(address, BridgeRequestHandler)

    def process_request(self, request: Any, client_address: Any) -> None:
        with self._connections_lock:
            self._connections.add(request)
        super().process_request(request, client_address)

    def shutdown_request(self, request: Any) -> None:
        with self._connections_lock:
            self._connections.discard(request)
        super().shutdown_request(request)

    def close_connections(self) -> None:
        """Shut down every accepted connection still open."""
        with self._connections_lock:
            connections = list(self._connections)
        for conn in connections:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass

    def handle_error(self, request: Any, client_address: Any) -> None:
        logger.exception("bridge connection from %s failed", client_address)


class ProxyBridge:
    """Ephemeral loopback HTTP server forwarding to the upstream API.

    Args:
        client: An opened :class:`~apix.client.upstream.UpstreamClient`.
        host: Interface to bind; always loopback in practice.

    Example::

        with ProxyBridge(client) as url:
            subprocess.run(["apix-foo"], env={**os.environ, "APIX_API": url})
    """

    def __init__(self, client: UpstreamClient, host: str = LOOPBACK_HOST) -> None:
        self._client = client
        self._session = ProxySession(host=host)
        self._server: Optional[_BridgeServer] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def session(self) -> ProxySession:
        return self._session

    @property
    def url(self) -> str:
        return self._session.url

    def start(self) -> str:
        """Bind and start serving; returns the base URL ``http://127.0.0.1:<port>``.

        Raises:
            ProxyBindError: If the listening socket cannot be acquired.
            ExtensionError: If this bridge was already started.
        """
        with self._lock:
            if self._session.state is not ProxyState.CREATED:
                raise ExtensionError(f"Bridge already {self._session.state.value}")
            try:
                server = _BridgeServer((self._session.host, 0), self._forward)
            except OSError as exc:
                raise ProxyBindError(
                    f"Cannot start extension API bridge on {self._session.host}: {exc}"
                ) from exc

            self._server = server
            self._session.port = server.server_address[1]
            self._thread = threading.Thread(
                target=server.serve_forever,
                name=f"apix-bridge-{self._session.port}",
                daemon=True,
            )
            self._thread.start()
            self._session.state = ProxyState.LISTENING

        debug(f"extension proxy server listening at {self.url}")
        return self.url

    def stop(self) -> None:
        """Stop accepting connections and close the listening socket.

        Safe to call more than once and before :meth:`start`. Open
        connections are shut down; requests still in flight are abandoned,
        not waited for.
        """
        with self._lock:
            if self._session.state is ProxyState.CLOSED:
                return
            server, thread = self._server, self._thread
            self._server = None
            self._thread = None
            self._session.state = ProxyState.CLOSED

        if server is not None:
            server.shutdown()
            server.server_close()
            server.close_connections()
        if thread is not None:
            thread.join()
        debug("extension proxy server shut down")

    def __enter__(self) -> str:
        return self.start()

    def __exit__(self, *args: object) -> None:
        self.stop()

    def _forward(
        self,
        method: str,
        path: str,
        headers: list[tuple[str, str]],
        body: Optional[Iterator[bytes]],
    ) -> httpx.Response:
        try:
            return self._client.stream(
                method,
                path,
                headers=headers,
                content=body,
                use_current_team=False,
            )
        except ConnectionError_ as exc:
            raise ProxyForwardError(str(exc)) from exc
