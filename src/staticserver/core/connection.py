"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps an accepted client socket with the three operations the handler
needs: read the request header block, send a response, close.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

TCP does not preserve message boundaries. A client that writes

    GET /index.html HTTP/1.1\\r\\nHost: localhost\\r\\n\\r\\n

in one call may be read as any split of those bytes:

    recv() → "GET /ind"
    recv() → "ex.html HTTP/1.1\\r\\nHo"
    recv() → "st: localhost\\r\\n\\r\\n"

So we buffer, and only stop when the buffer ENDS with the header
terminator (\\r\\n\\r\\n). Request bodies are never read; a GET-only server
has no use for them.

=============================================================================
WHEN READING STOPS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  CONDITION                    RESULT                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │  buffer ends with \\r\\n\\r\\n    complete header block               │
    │  recv() returns b""           peer closed; whatever was read        │
    │  recv() times out             whatever was read so far              │
    │  buffer >= max_header_size    whatever was read (truncated)         │
    │  connection reset             b"" and the connection is marked      │
    │                               broken: no response is attempted      │
    └─────────────────────────────────────────────────────────────────────┘

read_request() never raises and never blocks longer than `timeout` per
recv() call. Deciding whether the bytes form a valid request is the
parser's job: anything without a terminator becomes a 400.

The size cap is a hardening addition. Without it a client could stream
header bytes forever, one byte per timeout window, and grow the buffer
without bound.

=============================================================================
CLOSING
=============================================================================

close() shuts down both directions and releases the descriptor. It is
idempotent: the handler calls it from a finally block, and calling it again
(from a context manager, a test, a second error path) is a no-op.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Tuple
import uuid


logger = logging.getLogger(__name__)


HEADER_TERMINATOR = b"\r\n\r\n"


class ConnectionState(Enum):
    """Where a connection is in its (short) life."""

    NEW = "new"              # Accepted, nothing read yet
    CLOSED = "closed"        # Socket released


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The accepted client socket.
        address: Peer (ip, port).
        id: Short identifier used as a log prefix.
        state: Current ConnectionState.
        broken: Set when the transport failed (reset, broken pipe).
                Once set, send_response() does not try to write.
        bytes_sent: Total bytes handed to the socket.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.monotonic)
    broken: bool = False
    bytes_sent: int = 0

    buffer_size: int = 1024
    timeout: float = 5.0
    max_header_size: int = 64 * 1024
    drain_timeout: float = 0.5

    def __post_init__(self):
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0] if self.address else ""

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.monotonic() - self.created_at

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> bytes:
        """
        Read the request header block.

            while buffer does not end with \\r\\n\\r\\n:
                chunk = recv()          ← bounded by `timeout`
                if not chunk: break     ← peer closed
                buffer += chunk
                if too big: break

        Returns:
            The bytes read. May be empty, may lack the terminator.
        """
        buffer = bytearray()

        try:
            while not buffer.endswith(HEADER_TERMINATOR):
                chunk = self.socket.recv(self.buffer_size)
                if not chunk:
                    logger.debug(f"[{self.id}] Peer closed after {len(buffer)} bytes")
                    break

                buffer += chunk

                if len(buffer) >= self.max_header_size:
                    logger.warning(
                        f"[{self.id}] Header block exceeds {self.max_header_size} bytes, "
                        f"stopped reading"
                    )
                    break

        except socket.timeout:
            logger.info(f"[{self.id}] Read timed out after {len(buffer)} bytes")

        except OSError as e:
            # Reset or broken pipe: the stream is unusable
            logger.warning(f"[{self.id}] Read failed: {e}")
            self.broken = True
            return b""

        return bytes(buffer)

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send response bytes with sendall().

        Returns:
            True if all data was sent, False if the connection is (or just
            became) unusable. Never raises.
        """
        if self.broken or self.is_closed:
            logger.debug(f"[{self.id}] Not writing to unusable connection")
            return False

        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            self.broken = True
            return False

        self.bytes_sent += len(data)
        return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close both directions of the connection, once.

        1. shutdown(SHUT_WR)   send FIN: the client sees end-of-response
        2. drain               read what the client still sends (briefly),
                               so unread bytes don't turn the close into
                               a RST that can destroy the response in flight
        3. shutdown(SHUT_RD) + close()
        """
        if self.is_closed:
            return

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        if not self.broken:
            self._drain()

        try:
            self.socket.shutdown(socket.SHUT_RD)
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age * 1000:.1f}ms")

    def _drain(self):
        deadline = time.monotonic() + self.drain_timeout
        try:
            self.socket.settimeout(self.drain_timeout)
            while time.monotonic() < deadline:
                if not self.socket.recv(self.buffer_size):
                    break
        except OSError:
            pass  # Timeout or reset, closing anyway

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
