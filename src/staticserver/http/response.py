"""
=============================================================================
HTTP RESPONSE BUILDING AND WRITING
=============================================================================

Serializes responses and puts them on a connection.

=============================================================================
RESPONSE FORMAT
=============================================================================

Every response this server sends has the same shape:

    ┌─────────────────────────────────────────────────────────────────┐
    │  HTTP/1.1 200 OK\\r\\n                   ← status line           │
    │  Content-Type: text/css\\r\\n            ┐                       │
    │  Content-Length: 1234\\r\\n              ├ always, in this order │
    │  Connection: close\\r\\n                 ┘                       │
    │  \\r\\n                                  ← end of headers        │
    │  body { margin: 0; } ...               ← exactly 1234 bytes    │
    └─────────────────────────────────────────────────────────────────┘

Two rules about the version on the status line:

    SUCCESS   echoes the version the client declared
              "GET / HTTP/1.0"  →  "HTTP/1.0 200 OK"

    ERROR     always "HTTP/1.1", whatever was declared (the request may
              not have parsed far enough to have a version at all)

Connection: close is unconditional. There is no keep-alive: the handler
closes the socket right after the response is written.

=============================================================================
WRITE FAILURES
=============================================================================

By the time a response is ready the client may be gone. ResponseWriter
never raises: Connection.send_response() reports failure as False, the
failure is logged there, and the handler goes on to close the socket.
An error while sending an error response must not take down the worker.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from .status_codes import HTTPStatus


logger = logging.getLogger(__name__)


DEFAULT_VERSION = "HTTP/1.1"
ERROR_CONTENT_TYPE = "text/html"


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized.

        HTTPResponse(                      to_bytes()
          status=HTTPStatus.OK,    ─────►  b"HTTP/1.1 200 OK\\r\\n"
          headers={...},                   b"Content-Type: ...\\r\\n"
          body=b"...",                     ...
        )                                  b"\\r\\n" + body

    Headers keep insertion order (plain dict).
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = DEFAULT_VERSION

    @property
    def status_line(self) -> str:
        """Status line, e.g. "HTTP/1.1 404 Not Found"."""
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def to_bytes(self) -> bytes:
        """
        Serialize status line, headers and body.

        The header block is encoded as Latin-1 (header values are ASCII
        in practice); the body is appended untouched.
        """
        lines = [self.status_line]
        for name, value in self.headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")
        header_bytes = "\r\n".join(lines).encode("iso-8859-1") + b"\r\n"
        return header_bytes + self.body


def success_response(
    version: str,
    content_type: str,
    body: bytes,
) -> HTTPResponse:
    """
    Build a 200 response for file content.

    Args:
        version: The version token from the request line (echoed).
        content_type: MIME type from the registry.
        body: File bytes, sent verbatim.
    """
    return HTTPResponse(
        status=HTTPStatus.OK,
        headers={
            "Content-Type": content_type,
            "Content-Length": str(len(body)),
            "Connection": "close",
        },
        body=body,
        version=version,
    )


def error_page(status: HTTPStatus) -> str:
    """The HTML body sent with every error response."""
    code, phrase = int(status), status.phrase
    return (
        f"<html><head><title>{code} {phrase}</title></head>"
        f"<body><h1>Error {code}: {phrase}</h1></body></html>"
    )


def error_response(status: Union[HTTPStatus, int]) -> HTTPResponse:
    """
    Build an error response. Always HTTP/1.1, always an HTML body.

    Example:
        >>> error_response(404).status_line
        'HTTP/1.1 404 Not Found'
    """
    status = HTTPStatus(status)
    body = error_page(status).encode("utf-8")
    return HTTPResponse(
        status=status,
        headers={
            "Content-Type": ERROR_CONTENT_TYPE,
            "Content-Length": str(len(body)),
            "Connection": "close",
        },
        body=body,
        version=DEFAULT_VERSION,
    )


class ResponseWriter:
    """
    Writes responses onto a connection without ever raising.

    The connection only needs a send_response(bytes) -> bool method and an
    id attribute for log lines; core.Connection provides both.

    Usage:
        writer = ResponseWriter()
        writer.write_success(conn, "HTTP/1.1", "text/css", css_bytes)
        writer.write_error(conn, HTTPStatus.NOT_FOUND)
    """

    def write_success(
        self,
        conn,
        version: str,
        content_type: str,
        body: bytes,
    ) -> bool:
        """
        Send a 200 response echoing the request's version.

        Returns:
            True if every byte was handed to the socket.
        """
        return self.write(conn, success_response(version, content_type, body))

    def write_error(self, conn, status: Union[HTTPStatus, int]) -> bool:
        """
        Send an error response (HTTP/1.1, generated HTML body).

        Returns:
            True if every byte was handed to the socket.
        """
        return self.write(conn, error_response(status))

    def write(self, conn, response: HTTPResponse) -> bool:
        """Serialize and send any response; failures are logged, not raised."""
        try:
            data = response.to_bytes()
        except (UnicodeEncodeError, ValueError) as e:
            logger.error(f"[{_conn_id(conn)}] Could not serialize response: {e}")
            return False

        sent = conn.send_response(data)
        if not sent:
            logger.info(
                f"[{_conn_id(conn)}] Client gone before "
                f"{response.status_line!r} was delivered"
            )
        return sent


def _conn_id(conn) -> Optional[str]:
    return getattr(conn, "id", None)
