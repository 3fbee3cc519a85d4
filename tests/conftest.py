"""
pytest configuration and fixtures.
"""

import os
import socket
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from staticserver import StaticServer, ServerConfig


INDEX_HTML = b"<!DOCTYPE html><html><body><h1>Home</h1></body></html>\n"
STYLE_CSS = b"body { margin: 0; font-family: sans-serif; }\n"
APP_JS = b"document.title = 'caf\xc3\xa9';\n"
BLOB_JS = bytes(range(256)) * 4  # every byte value


@pytest.fixture
def webroot(tmp_path: Path) -> Path:
    """A document root with a few servable and non-servable files."""
    root = tmp_path / "webroot"
    root.mkdir()
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "style.css").write_bytes(STYLE_CSS)
    (root / "app.js").write_bytes(APP_JS)
    (root / "blob.js").write_bytes(BLOB_JS)
    (root / "data.json").write_bytes(b'{"secret": true}')
    (root / "notes").write_bytes(b"no extension")
    (root / "sub").mkdir()
    (root / "sub" / "page.html").write_bytes(b"<p>sub page</p>")
    (root / "sub" / "my page.html").write_bytes(b"<p>spaced</p>")
    return root


@pytest.fixture
def outside_file(tmp_path: Path) -> Path:
    """A servable-looking file that lives OUTSIDE the document root."""
    secret = tmp_path / "secret.html"
    secret.write_bytes(b"<p>top secret</p>")
    return secret


@pytest.fixture
def config(webroot: Path) -> ServerConfig:
    """Test configuration: loopback, OS-assigned port, short timeout."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        document_root=webroot,
        read_timeout=1.0,
        log_level="WARNING",
    )


@dataclass
class RawResponse:
    """A response read back off the socket, split into its parts."""

    raw: bytes
    status_line: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    header_names: list = field(default_factory=list)
    body: bytes = b""

    @property
    def status(self) -> int:
        return int(self.status_line.split(" ")[1]) if self.status_line else 0

    @property
    def version(self) -> str:
        return self.status_line.split(" ")[0] if self.status_line else ""


def parse_raw_response(raw: bytes) -> RawResponse:
    head, sep, body = raw.partition(b"\r\n\r\n")
    response = RawResponse(raw=raw)
    if not sep:
        return response
    lines = head.decode("iso-8859-1").split("\r\n")
    response.status_line = lines[0]
    for line in lines[1:]:
        name, _, value = line.partition(":")
        response.headers[name.strip()] = value.strip()
        response.header_names.append(name.strip())
    response.body = body
    return response


def http_exchange(address, payload: bytes, timeout: float = 10.0) -> RawResponse:
    """Connect, send `payload`, read until the server closes."""
    with socket.create_connection(address, timeout=timeout) as sock:
        if payload:
            sock.sendall(payload)
        chunks = []
        while True:
            try:
                chunk = sock.recv(65536)
            except ConnectionResetError:
                break
            if not chunk:
                break
            chunks.append(chunk)
    return parse_raw_response(b"".join(chunks))


class ServerThread:
    """Runs a StaticServer in a background thread."""

    def __init__(self, server: StaticServer):
        self.server = server
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"configure_logging": False},
            daemon=True,
        )

    def start(self):
        self._thread.start()
        if not self.server.wait_until_ready(5.0):
            raise RuntimeError("Server failed to start")

    @property
    def address(self):
        return self.server.address

    def request(self, payload: bytes, timeout: float = 10.0) -> RawResponse:
        return http_exchange(self.address, payload, timeout)

    def get(self, target: str, version: str = "HTTP/1.1") -> RawResponse:
        return self.request(
            f"GET {target} {version}\r\nHost: localhost\r\n\r\n".encode("latin-1")
        )

    def stop(self):
        self.server.stop()
        self._thread.join(timeout=15.0)

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[ServerThread, None, None]:
    """A live server on 127.0.0.1:<random port> serving `webroot`."""
    server_thread = ServerThread(StaticServer(config))
    server_thread.start()

    yield server_thread

    server_thread.stop()


@pytest.fixture
def make_symlink() -> Callable[[Path, Path], None]:
    """Create a symlink, skipping the test where symlinks are unavailable."""
    def _make(link: Path, target: Path):
        try:
            os.symlink(target, link, target_is_directory=target.is_dir())
        except (OSError, NotImplementedError) as e:
            pytest.skip(f"symlinks not supported here: {e}")
    return _make


class FakeConnection:
    """
    In-memory stand-in for core.Connection.

    Records what was sent and how often close() was called.
    """

    def __init__(self, raw: bytes = b"", fail_send: bool = False, broken_read: bool = False,
                 read_error: Exception = None):
        self.id = "fake0001"
        self.address = ("127.0.0.1", 50000)
        self.raw = raw
        self.fail_send = fail_send
        self.broken_read = broken_read
        self.read_error = read_error
        self.broken = False
        self.sent = []
        self.send_attempts = 0
        self.close_calls = 0
        self.bytes_sent = 0

    def read_request(self) -> bytes:
        if self.read_error is not None:
            raise self.read_error
        if self.broken_read:
            self.broken = True
            return b""
        return self.raw

    def send_response(self, data: bytes) -> bool:
        self.send_attempts += 1
        if self.fail_send or self.broken:
            self.broken = True
            return False
        self.sent.append(data)
        self.bytes_sent += len(data)
        return True

    def close(self):
        self.close_calls += 1

    @property
    def response(self) -> RawResponse:
        return parse_raw_response(b"".join(self.sent))


@pytest.fixture
def fake_connection() -> Callable[..., FakeConnection]:
    return FakeConnection


@pytest.fixture
def wait_for():
    """Poll a predicate until it is true or the timeout expires."""
    def _wait(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return predicate()
    return _wait


@pytest.fixture
def parse_response() -> Callable[[bytes], RawResponse]:
    return parse_raw_response
