"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

Everything between "bytes arrived" and "bytes to send":

    ┌──────────────────────────────────────────────────────────────────┐
    │  request.py       RequestParser   raw header block → HTTPRequest │
    │  paths.py         PathResolver    target → file in document root │
    │  mime_types.py    ContentTypeRegistry   extension whitelist      │
    │  response.py      ResponseWriter  HTTPResponse → connection      │
    │  status_codes.py  HTTPStatus      the six codes we ever send     │
    └──────────────────────────────────────────────────────────────────┘

None of these touch sockets directly; core/ owns the I/O.

=============================================================================
"""

from .status_codes import HTTPStatus
from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .mime_types import ContentTypeRegistry, DEFAULT_CONTENT_TYPES
from .paths import (
    PathResolver,
    ResolvedPath,
    PathResolutionError,
    BadPathError,
    ForbiddenPathError,
)
from .response import (
    HTTPResponse,
    ResponseWriter,
    success_response,
    error_response,
)


__all__ = [
    "HTTPStatus",
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",
    "ContentTypeRegistry",
    "DEFAULT_CONTENT_TYPES",
    "PathResolver",
    "ResolvedPath",
    "PathResolutionError",
    "BadPathError",
    "ForbiddenPathError",
    "HTTPResponse",
    "ResponseWriter",
    "success_response",
    "error_response",
]
