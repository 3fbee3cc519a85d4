"""
=============================================================================
CONNECTION HANDLER
=============================================================================

Runs one connection from first byte to close, on a worker thread.

=============================================================================
STATE MACHINE
=============================================================================

    READING_HEADERS ──► PARSING ──► VALIDATING_METHOD ──► RESOLVING_PATH
          │                │               │                    │
          │ reset          │ 400           │ 405                │ 400
          ▼                ▼               ▼                    ▼
        CLOSED      ERROR_RESPONDING ◄─────┴────────────────────┤
                           ▲                                    │
                           │ 403                                ▼
                           ├──────────────────────── CHECKING_EXTENSION
                           │ 404                                │
                           ├──────────────────────── CHECKING_EXISTENCE
                           │ 500                                │
                           └──────────────────────────────── SERVING
                                                                │
                                          (every path) ──► CLOSED

    ┌──────────────────────────────────────────────────────┬────────┐
    │ Condition                                            │ Status │
    ├──────────────────────────────────────────────────────┼────────┤
    │ empty / unterminated request                         │  400   │
    │ malformed request line (≠ 3 tokens)                  │  400   │
    │ method ≠ GET                                         │  405   │
    │ path fails decoding, traversal or containment check  │  400   │
    │ extension missing or not whitelisted                 │  403   │
    │ file does not exist                                  │  404   │
    │ I/O failure while reading the file (or any bug)      │  500   │
    └──────────────────────────────────────────────────────┴────────┘

Whatever happens, the connection is closed exactly once, in the finally
block of handle(). That includes the case where sending the error response
itself fails: ResponseWriter never raises, so nothing can skip the close.

The method check comes before path resolution, so a POST never causes a
filesystem call. The extension check comes before the existence check, so
/data.json is 403 whether or not data.json is on disk: the response never
reveals which non-servable files exist.

=============================================================================
"""

import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .access_log import AccessLogger
from .http.paths import PathResolver, PathResolutionError
from .http.request import HTTPRequest, HTTPParseError, RequestParser
from .http.response import ResponseWriter
from .http.status_codes import HTTPStatus


logger = logging.getLogger(__name__)


ALLOWED_METHOD = "GET"


class HandlerState(Enum):
    READING_HEADERS = "reading_headers"
    PARSING = "parsing"
    VALIDATING_METHOD = "validating_method"
    RESOLVING_PATH = "resolving_path"
    CHECKING_EXTENSION = "checking_extension"
    CHECKING_EXISTENCE = "checking_existence"
    SERVING = "serving"
    ERROR_RESPONDING = "error_responding"
    CLOSED = "closed"


@dataclass
class HandlerResult:
    """
    What happened to one connection.

    Attributes:
        states: Every state entered, in order. Always ends with CLOSED.
        status: Status of the response attempted, or None if none was.
        delivered: Whether the response reached the socket in full.
        request: The parsed request, if parsing got that far.
    """

    states: List[HandlerState] = field(default_factory=list)
    status: Optional[HTTPStatus] = None
    delivered: bool = False
    request: Optional[HTTPRequest] = None

    @property
    def state(self) -> Optional[HandlerState]:
        return self.states[-1] if self.states else None

    def enter(self, state: HandlerState):
        self.states.append(state)


class ConnectionHandler:
    """
    The per-connection pipeline.

    One instance is shared by all workers: it holds only the parser,
    resolver, writer and access logger, none of which change after
    construction. Per-connection state lives in the HandlerResult.

    Usage:
        handler = ConnectionHandler(PathResolver("/srv/www"))
        listener.start(handler.handle)
    """

    def __init__(
        self,
        resolver: PathResolver,
        parser: Optional[RequestParser] = None,
        writer: Optional[ResponseWriter] = None,
        access_log: Optional[AccessLogger] = None,
    ):
        self.resolver = resolver
        self.parser = parser or RequestParser()
        self.writer = writer or ResponseWriter()
        self.access_log = access_log

    def handle(self, conn) -> HandlerResult:
        """
        Read, parse, validate, resolve, respond, close.

        Never raises. `conn` needs read_request(), send_response(),
        close(), and the id/address/broken attributes of core.Connection.
        """
        result = HandlerResult()
        started = time.monotonic()

        try:
            self._process(conn, result)
        except Exception:
            logger.exception(f"[{conn.id}] Unhandled error while handling connection")
            if result.status is None and not conn.broken:
                self._respond_error(conn, result, HTTPStatus.INTERNAL_SERVER_ERROR)
        finally:
            result.enter(HandlerState.CLOSED)
            try:
                conn.close()
            except Exception:
                logger.exception(f"[{conn.id}] Error while closing connection")
            self._log_access(conn, result, started)

        return result

    # =========================================================================
    # PIPELINE
    # =========================================================================

    def _process(self, conn, result: HandlerResult):
        # ─────────────────────────────────────────────────────────────────
        # READ
        # ─────────────────────────────────────────────────────────────────
        result.enter(HandlerState.READING_HEADERS)
        raw = conn.read_request()
        if conn.broken:
            logger.info(f"[{conn.id}] Connection lost while reading, no response sent")
            return

        # ─────────────────────────────────────────────────────────────────
        # PARSE
        # ─────────────────────────────────────────────────────────────────
        result.enter(HandlerState.PARSING)
        try:
            request = self.parser.parse(raw, conn.address)
        except HTTPParseError as e:
            logger.info(f"[{conn.id}] Bad request: {e.message}")
            return self._respond_error(conn, result, e.status_code)
        result.request = request
        logger.debug(f"[{conn.id}] {request.request_line}")

        # ─────────────────────────────────────────────────────────────────
        # METHOD
        # ─────────────────────────────────────────────────────────────────
        result.enter(HandlerState.VALIDATING_METHOD)
        if request.method != ALLOWED_METHOD:
            logger.info(f"[{conn.id}] Method not allowed: {request.method}")
            return self._respond_error(conn, result, HTTPStatus.METHOD_NOT_ALLOWED)

        # ─────────────────────────────────────────────────────────────────
        # PATH
        # ─────────────────────────────────────────────────────────────────
        result.enter(HandlerState.RESOLVING_PATH)
        try:
            path = self.resolver.locate(request.target)
        except PathResolutionError as e:
            logger.warning(f"[{conn.id}] Rejected path {request.target!r}: {e.message}")
            return self._respond_error(conn, result, e.status_code)

        result.enter(HandlerState.CHECKING_EXTENSION)
        try:
            resolved = self.resolver.classify(path, request.target)
        except PathResolutionError as e:
            logger.info(f"[{conn.id}] Forbidden {request.target!r}: {e.message}")
            return self._respond_error(conn, result, e.status_code)

        result.enter(HandlerState.CHECKING_EXISTENCE)
        if not resolved.filesystem_path.is_file():
            logger.info(f"[{conn.id}] File not found: {resolved.filesystem_path}")
            return self._respond_error(conn, result, HTTPStatus.NOT_FOUND)

        # ─────────────────────────────────────────────────────────────────
        # SERVE
        # ─────────────────────────────────────────────────────────────────
        result.enter(HandlerState.SERVING)
        try:
            body = resolved.filesystem_path.read_bytes()
        except OSError as e:
            logger.error(f"[{conn.id}] Could not read {resolved.filesystem_path}: {e}")
            return self._respond_error(conn, result, HTTPStatus.INTERNAL_SERVER_ERROR)

        logger.debug(f"[{conn.id}] Serving {resolved.url_path} ({len(body)} bytes)")
        result.status = HTTPStatus.OK
        result.delivered = self.writer.write_success(
            conn, request.version, resolved.content_type, body
        )

    def _respond_error(self, conn, result: HandlerResult, status):
        result.enter(HandlerState.ERROR_RESPONDING)
        result.status = HTTPStatus(status)
        result.delivered = self.writer.write_error(conn, result.status)

    def _log_access(self, conn, result: HandlerResult, started: float):
        if self.access_log is None:
            return
        self.access_log.record(
            connection_id=conn.id,
            client_ip=conn.address[0] if conn.address else "",
            request_line=result.request.request_line if result.request else None,
            status_code=result.status,
            bytes_sent=getattr(conn, "bytes_sent", 0),
            duration_ms=(time.monotonic() - started) * 1000,
        )
