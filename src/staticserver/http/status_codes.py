"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server puts on the wire, with their reason phrases.

A static file server only needs a handful of them:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  CODE  PHRASE                  WHEN                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │  200   OK                      File found and sent                  │
    │  400   Bad Request             Empty/malformed request, bad path    │
    │  403   Forbidden               Extension not in the whitelist       │
    │  404   Not Found               Whitelisted path, no file on disk    │
    │  405   Method Not Allowed      Anything other than GET              │
    │  500   Internal Server Error   File could not be read               │
    └─────────────────────────────────────────────────────────────────────┘

No other code is ever sent. Keeping the enum this small means a typo like
HTTPStatus.NOT_MODIFIED fails loudly instead of leaking onto the wire.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.NOT_FOUND == 404
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    OK = 200                        # File served

    BAD_REQUEST = 400               # Malformed request or rejected path
    FORBIDDEN = 403                 # Extension not servable
    NOT_FOUND = 404                 # No such file
    METHOD_NOT_ALLOWED = 405        # Only GET is supported

    INTERNAL_SERVER_ERROR = 500     # I/O failure while serving

    @property
    def phrase(self) -> str:
        """
        Reason phrase for the status line.

            HTTP/1.1 404 Not Found
                     ─── ─────────
                      │      │
                      │      └── phrase
                      └───────── status code
        """
        return _STATUS_PHRASES[self]


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.FORBIDDEN: "Forbidden",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.METHOD_NOT_ALLOWED: "Method Not Allowed",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
}
