"""
End-to-end tests: a real server on a loopback port, real sockets.
"""

import socket
import threading
import time

import pytest

from staticserver import StaticServer

from conftest import (
    APP_JS,
    BLOB_JS,
    INDEX_HTML,
    STYLE_CSS,
    ServerThread,
)


class TestServing:

    def test_root_equals_index(self, running_server):
        root = running_server.get("/")
        index = running_server.get("/index.html")

        assert root.status == 200
        assert root.body == index.body == INDEX_HTML
        assert root.headers["Content-Type"] == "text/html"

    def test_css(self, running_server):
        response = running_server.get("/style.css")

        assert response.status_line == "HTTP/1.1 200 OK"
        assert response.header_names == ["Content-Type", "Content-Length", "Connection"]
        assert response.headers["Content-Type"] == "text/css"
        assert response.headers["Content-Length"] == str(len(STYLE_CSS))
        assert response.headers["Connection"] == "close"
        assert response.body == STYLE_CSS

    def test_js_with_utf8(self, running_server):
        response = running_server.get("/app.js")

        assert response.headers["Content-Type"] == "application/javascript"
        assert response.body == APP_JS

    def test_binary_round_trip(self, running_server):
        response = running_server.get("/blob.js")

        assert response.body == BLOB_JS
        assert int(response.headers["Content-Length"]) == len(BLOB_JS)

    def test_encoded_space(self, running_server):
        response = running_server.get("/sub/my%20page.html")
        assert response.status == 200
        assert response.body == b"<p>spaced</p>"

    def test_query_string_ignored(self, running_server):
        assert running_server.get("/style.css?v=123").body == STYLE_CSS

    def test_http_1_0_echoed(self, running_server):
        response = running_server.get("/index.html", version="HTTP/1.0")
        assert response.status_line == "HTTP/1.0 200 OK"

    def test_large_file(self, running_server, webroot):
        big = b"x" * (2 * 1024 * 1024)
        (webroot / "big.js").write_bytes(big)

        response = running_server.get("/big.js")

        assert response.body == big


class TestErrors:

    def test_forbidden_extension(self, running_server):
        response = running_server.get("/data.json")
        assert response.status_line == "HTTP/1.1 403 Forbidden"

    def test_not_found(self, running_server):
        response = running_server.get("/missing.html")

        assert response.status_line == "HTTP/1.1 404 Not Found"
        assert response.headers["Content-Type"] == "text/html"
        assert b"Error 404: Not Found" in response.body

    def test_post(self, running_server):
        response = running_server.request(b"POST /index.html HTTP/1.1\r\nHost: x\r\n\r\n")
        assert response.status_line == "HTTP/1.1 405 Method Not Allowed"

    @pytest.mark.parametrize("target", [
        "/../../etc/passwd",
        "/%2e%2e/%2e%2e/etc/passwd",
        "/..%5c..%5csecret.html",
        "/index%zz.html",
    ])
    def test_traversal(self, running_server, target):
        response = running_server.get(target)
        assert response.status_line == "HTTP/1.1 400 Bad Request"

    def test_symlink_escape(self, running_server, webroot, outside_file, make_symlink):
        make_symlink(webroot / "leak.html", outside_file)

        response = running_server.get("/leak.html")

        assert response.status == 400
        assert b"top secret" not in response.body

    def test_symlinked_index_escape(self, running_server, webroot, outside_file, make_symlink):
        (webroot / "index.html").unlink()
        make_symlink(webroot / "index.html", outside_file)

        for target in ("/", "/index.html"):
            response = running_server.get(target)
            assert response.status == 400
            assert b"top secret" not in response.body

    def test_malformed_request_line(self, running_server):
        response = running_server.request(b"GARBAGE\r\n\r\n")
        assert response.status_line == "HTTP/1.1 400 Bad Request"

    def test_error_ignores_declared_version(self, running_server):
        response = running_server.get("/missing.html", version="HTTP/1.0")
        assert response.version == "HTTP/1.1"

    def test_silent_client_gets_400_after_timeout(self, running_server, config):
        started = time.monotonic()
        response = running_server.request(b"", timeout=config.read_timeout + 5)
        elapsed = time.monotonic() - started

        assert response.status == 400
        assert elapsed >= config.read_timeout * 0.9
        assert elapsed < config.read_timeout + 3

    def test_partial_request_gets_400(self, running_server):
        response = running_server.request(b"GET /index.html HTTP/1.1\r\nHost: x")
        assert response.status == 400

    def test_client_disconnect_does_not_break_server(self, running_server):
        for _ in range(5):
            sock = socket.create_connection(running_server.address, timeout=5.0)
            sock.sendall(b"GET /blob.js HTTP/1.1\r\n\r\n")
            sock.close()

        assert running_server.get("/style.css").body == STYLE_CSS


class TestConcurrency:

    def test_concurrent_requests(self, running_server):
        results = [None] * 20

        def fetch(i):
            results[i] = running_server.get("/blob.js" if i % 2 else "/style.css")

        threads = [threading.Thread(target=fetch, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(15.0)

        for i, response in enumerate(results):
            assert response is not None
            assert response.body == (BLOB_JS if i % 2 else STYLE_CSS)

    def test_slow_client_does_not_block_others(self, running_server):
        slow = socket.create_connection(running_server.address, timeout=5.0)
        try:
            slow.sendall(b"GET /index")  # never finishes
            started = time.monotonic()
            response = running_server.get("/style.css")
            assert response.status == 200
            assert time.monotonic() - started < 0.9
        finally:
            slow.close()

    def test_bounded_pool(self, config):
        server_thread = ServerThread(StaticServer(config.with_overrides(max_workers=2)))
        server_thread.start()
        try:
            responses = []
            lock = threading.Lock()

            def fetch():
                response = server_thread.get("/index.html")
                with lock:
                    responses.append(response)

            threads = [threading.Thread(target=fetch) for _ in range(6)]
            for t in threads:
                t.start()
            for t in threads:
                t.join(15.0)

            assert len(responses) == 6
            assert all(r.body == INDEX_HTML for r in responses)
        finally:
            server_thread.stop()


class TestLifecycle:

    def test_stop_ends_run(self, config):
        server_thread = ServerThread(StaticServer(config))
        server_thread.start()
        assert server_thread.server.is_running

        started = time.monotonic()
        server_thread.stop()

        assert not server_thread.is_alive
        assert time.monotonic() - started < 5.0
        assert not server_thread.server.is_running

    def test_stop_is_idempotent(self, config):
        server_thread = ServerThread(StaticServer(config))
        server_thread.start()

        server_thread.server.stop()
        server_thread.server.stop()
        server_thread.stop()

        assert not server_thread.is_alive

    def test_in_flight_request_finishes_after_stop(self, running_server):
        sock = socket.create_connection(running_server.address, timeout=5.0)
        try:
            sock.sendall(b"GET /style.css HTTP/1.1\r\n")
            time.sleep(0.3)  # let the accept loop pick it up
            running_server.server.stop()
            sock.sendall(b"\r\n")

            data = b""
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                data += chunk
        finally:
            sock.close()

        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        assert data.endswith(STYLE_CSS)

    def test_invalid_root_rejected_at_construction(self, config, tmp_path):
        with pytest.raises(ValueError):
            StaticServer(config.with_overrides(document_root=tmp_path / "missing"))
