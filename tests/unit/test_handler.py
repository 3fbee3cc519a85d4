"""
Unit tests for the per-connection pipeline.

Uses the in-memory FakeConnection from conftest, so each status decision
is checked without sockets.
"""

import logging
from pathlib import Path

import pytest

from staticserver.access_log import AccessLogger
from staticserver.handler import ConnectionHandler, HandlerState
from staticserver.http.paths import PathResolver
from staticserver.http.status_codes import HTTPStatus

from conftest import INDEX_HTML, STYLE_CSS, BLOB_JS


def get(target: str, version: str = "HTTP/1.1") -> bytes:
    return f"GET {target} {version}\r\nHost: localhost\r\n\r\n".encode("latin-1")


@pytest.fixture
def handler(webroot):
    return ConnectionHandler(PathResolver(webroot))


class TestStatusDecisions:

    def test_serves_file(self, handler, fake_connection):
        conn = fake_connection(get("/style.css"))

        result = handler.handle(conn)

        assert result.status == HTTPStatus.OK
        assert result.delivered
        assert conn.response.status_line == "HTTP/1.1 200 OK"
        assert conn.response.headers["Content-Type"] == "text/css"
        assert conn.response.headers["Content-Length"] == str(len(STYLE_CSS))
        assert conn.response.body == STYLE_CSS

    def test_root_serves_index(self, handler, fake_connection):
        conn = fake_connection(get("/"))
        handler.handle(conn)
        assert conn.response.body == INDEX_HTML

    def test_binary_body_verbatim(self, handler, fake_connection):
        conn = fake_connection(get("/blob.js"))
        handler.handle(conn)
        assert conn.response.body == BLOB_JS

    def test_success_echoes_version(self, handler, fake_connection):
        conn = fake_connection(get("/index.html", "HTTP/1.0"))
        handler.handle(conn)
        assert conn.response.version == "HTTP/1.0"

    @pytest.mark.parametrize("raw", [
        b"",
        b"GET /index.html HTTP/1.1\r\nHost: x",
        b"GET /index.html\r\n\r\n",
        b"GET /my page.html HTTP/1.1\r\n\r\n",
    ])
    def test_bad_request(self, handler, fake_connection, raw):
        conn = fake_connection(raw)

        result = handler.handle(conn)

        assert result.status == HTTPStatus.BAD_REQUEST
        assert conn.response.status == 400
        assert HandlerState.VALIDATING_METHOD not in result.states

    def test_method_not_allowed(self, handler, fake_connection):
        conn = fake_connection(b"POST /index.html HTTP/1.1\r\n\r\n")

        result = handler.handle(conn)

        assert conn.response.status == 405
        assert HandlerState.RESOLVING_PATH not in result.states

    def test_method_checked_before_path(self, handler, fake_connection, monkeypatch):
        """A non-GET request never reaches the filesystem."""
        def explode(*args, **kwargs):
            raise AssertionError("resolver must not be called")

        monkeypatch.setattr(handler.resolver, "locate", explode)
        conn = fake_connection(b"DELETE /../../etc/passwd HTTP/1.1\r\n\r\n")

        handler.handle(conn)

        assert conn.response.status == 405

    def test_traversal_is_bad_request(self, handler, fake_connection):
        conn = fake_connection(get("/../../etc/passwd"))
        result = handler.handle(conn)
        assert result.status == HTTPStatus.BAD_REQUEST

    def test_forbidden_extension(self, handler, fake_connection):
        conn = fake_connection(get("/data.json"))

        result = handler.handle(conn)

        assert conn.response.status == 403
        assert HandlerState.CHECKING_EXISTENCE not in result.states

    def test_forbidden_even_when_missing(self, handler, fake_connection):
        """403 vs 404 must not reveal which non-servable files exist."""
        conn = fake_connection(get("/nothing-here.json"))
        handler.handle(conn)
        assert conn.response.status == 403

    def test_not_found(self, handler, fake_connection):
        conn = fake_connection(get("/missing.html"))
        handler.handle(conn)
        assert conn.response.status == 404

    def test_directory_with_servable_name_is_not_found(
        self, handler, fake_connection, webroot
    ):
        (webroot / "dir.html").mkdir()
        conn = fake_connection(get("/dir.html"))
        handler.handle(conn)
        assert conn.response.status == 404

    def test_read_failure_is_server_error(self, handler, fake_connection, monkeypatch):
        def fail(self):
            raise PermissionError("denied")

        monkeypatch.setattr(Path, "read_bytes", fail)
        conn = fake_connection(get("/index.html"))

        result = handler.handle(conn)

        assert result.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert conn.response.status == 500

    def test_unexpected_exception_is_server_error(self, handler, fake_connection):
        conn = fake_connection(read_error=RuntimeError("boom"))

        result = handler.handle(conn)

        assert result.status == HTTPStatus.INTERNAL_SERVER_ERROR
        assert conn.response.status == 500
        assert conn.close_calls == 1

    def test_errors_always_http_1_1(self, handler, fake_connection):
        conn = fake_connection(get("/missing.html", "HTTP/1.0"))
        handler.handle(conn)
        assert conn.response.status_line == "HTTP/1.1 404 Not Found"


class TestLifecycle:

    def test_state_trace_for_success(self, handler, fake_connection):
        result = handler.handle(fake_connection(get("/style.css")))

        assert result.states == [
            HandlerState.READING_HEADERS,
            HandlerState.PARSING,
            HandlerState.VALIDATING_METHOD,
            HandlerState.RESOLVING_PATH,
            HandlerState.CHECKING_EXTENSION,
            HandlerState.CHECKING_EXISTENCE,
            HandlerState.SERVING,
            HandlerState.CLOSED,
        ]

    def test_error_path_passes_through_error_responding(self, handler, fake_connection):
        result = handler.handle(fake_connection(get("/missing.html")))
        assert result.states[-2:] == [HandlerState.ERROR_RESPONDING, HandlerState.CLOSED]

    @pytest.mark.parametrize("raw", [
        b"",
        b"PUT / HTTP/1.1\r\n\r\n",
        get("/style.css"),
        get("/missing.html"),
        get("/data.json"),
        get("/../x.html"),
    ])
    def test_closed_exactly_once(self, handler, fake_connection, raw):
        conn = fake_connection(raw)

        result = handler.handle(conn)

        assert conn.close_calls == 1
        assert result.state == HandlerState.CLOSED

    def test_closed_once_when_send_fails(self, handler, fake_connection):
        conn = fake_connection(get("/style.css"), fail_send=True)

        result = handler.handle(conn)

        assert conn.close_calls == 1
        assert result.status == HTTPStatus.OK
        assert not result.delivered

    def test_failed_error_response_still_closes(self, handler, fake_connection):
        conn = fake_connection(get("/missing.html"), fail_send=True)

        result = handler.handle(conn)

        assert conn.send_attempts == 1
        assert conn.close_calls == 1
        assert result.status == HTTPStatus.NOT_FOUND
        assert not result.delivered

    def test_broken_read_sends_nothing(self, handler, fake_connection):
        conn = fake_connection(broken_read=True)

        result = handler.handle(conn)

        assert conn.send_attempts == 0
        assert conn.close_calls == 1
        assert result.status is None
        assert result.states == [HandlerState.READING_HEADERS, HandlerState.CLOSED]


class TestAccessLog:

    def test_one_line_per_connection(self, webroot, fake_connection, caplog):
        handler = ConnectionHandler(PathResolver(webroot), access_log=AccessLogger())

        with caplog.at_level(logging.INFO, logger="staticserver.access"):
            handler.handle(fake_connection(get("/style.css")))

        lines = [r for r in caplog.records if r.name == "staticserver.access"]
        assert len(lines) == 1
        assert '"GET /style.css HTTP/1.1" 200' in lines[0].getMessage()

    def test_unparsed_request_logged_as_dash(self, webroot, fake_connection, caplog):
        handler = ConnectionHandler(PathResolver(webroot), access_log=AccessLogger())

        with caplog.at_level(logging.INFO, logger="staticserver.access"):
            handler.handle(fake_connection(b""))

        message = [r for r in caplog.records if r.name == "staticserver.access"][0]
        assert '"-" 400' in message.getMessage()
