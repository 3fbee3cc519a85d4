"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw header block read from a connection into an HTTPRequest.

=============================================================================
WHAT WE PARSE (AND WHAT WE DON'T)
=============================================================================

    ┌─────────────────────────────────────────────────────────────────┐
    │  GET /css/style.css?v=3 HTTP/1.1\r\n     ← request line: PARSED │
    │  Host: localhost:8080\r\n                ← headers: kept, never │
    │  User-Agent: curl/8.5.0\r\n                 consulted           │
    │  \r\n                                    ← header terminator    │
    └─────────────────────────────────────────────────────────────────┘

The server only ever needs the request line:

    METHOD SP TARGET SP VERSION
    ───┬── ────┬──── ───┬───
       │       │        └── echoed back on 200 responses
       │       └─────────── handed (still URL-encoded) to PathResolver
       └─────────────────── must be GET, checked by the handler

The line is split on SINGLE spaces and must produce exactly three tokens.
"GET  /x HTTP/1.1" (two spaces) gives four tokens and is rejected, the same
as "GET /x" or "GET /my file.html HTTP/1.1".

=============================================================================
WHY ISO-8859-1?
=============================================================================

Request lines are ASCII by the RFC, but clients send anything. Latin-1 maps
every byte to exactly one code point, so decoding can never fail and never
loses information. Non-ASCII bytes in the target end up as odd characters
that the path resolver rejects or fails to find; the parser itself stays
total.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple


HEADER_TERMINATOR = b"\r\n\r\n"
LINE_TERMINATOR = "\r\n"


class HTTPParseError(Exception):
    """
    Raised when the header block cannot be turned into a request.

    Carries the HTTP status the connection handler should answer with, so
    callers never need a lookup table. Every parse failure this module
    raises is a 400.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed request line plus the raw header lines that followed it.

    Attributes:
        method: Request method exactly as sent ("GET", "POST", "get", ...).
        target: Request target, still URL-encoded, query string included.
        version: Protocol version token ("HTTP/1.1").
        header_lines: Header lines as received (not interpreted).
        client_address: (ip, port) of the peer.
    """

    method: str
    target: str
    version: str
    header_lines: List[str] = field(default_factory=list)
    client_address: Tuple[str, int] = ("", 0)

    @property
    def request_line(self) -> str:
        """The request line as it appeared on the wire."""
        return f"{self.method} {self.target} {self.version}"


class RequestParser:
    """
    Parses raw header blocks into HTTPRequest objects.

        Raw header bytes
              │
              ▼
        1. Empty?            → HTTPParseError("Empty request")
        2. No \\r\\n\\r\\n?      → HTTPParseError("Incomplete request")
        3. Decode Latin-1, split on \\r\\n
        4. Request line → split(" ")
              │  != 3 tokens → HTTPParseError("Malformed request line")
              ▼
        HTTPRequest(method, target, version)

    Step 2 is what turns a read timeout into a 400: the reader hands back
    whatever arrived before the deadline, and a header block without its
    terminator is never treated as a complete request.
    """

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse a raw header block.

        Args:
            data: Bytes read from the connection.
            client_address: Peer address, recorded on the request.

        Returns:
            The parsed request.

        Raises:
            HTTPParseError: Empty, incomplete or malformed input.
        """
        if not data or not data.strip():
            raise HTTPParseError("Empty request")

        if HEADER_TERMINATOR not in data:
            raise HTTPParseError("Incomplete request: header terminator not received")

        text = data.decode("iso-8859-1")
        header_section = text.split(LINE_TERMINATOR * 2, 1)[0]
        lines = header_section.split(LINE_TERMINATOR)

        method, target, version = self._parse_request_line(lines[0])

        return HTTPRequest(
            method=method,
            target=target,
            version=version,
            header_lines=lines[1:],
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        """
        Split the request line into its three tokens.

        Only single spaces separate tokens; empty tokens count, so doubled
        or trailing spaces make the line malformed.
        """
        parts = line.split(" ")
        if len(parts) != 3 or not all(parts):
            raise HTTPParseError(f"Malformed request line: {line!r}")
        method, target, version = parts
        return method, target, version


def parse_request(
    data: bytes,
    client_address: Optional[Tuple[str, int]] = None,
) -> HTTPRequest:
    """
    Parse a raw header block with a default parser.

    Example:
        >>> request = parse_request(b"GET /index.html HTTP/1.1\\r\\n\\r\\n")
        >>> request.method, request.target
        ('GET', '/index.html')
    """
    return RequestParser().parse(data, client_address or ("", 0))
