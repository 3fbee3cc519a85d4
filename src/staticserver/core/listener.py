"""
=============================================================================
LISTENER
=============================================================================

Binds the listening socket, accepts connections, hands each one to a
worker, and stops on request.

=============================================================================
SOCKET LIFECYCLE (server side)
=============================================================================

    1. socket()    create the TCP socket
    2. bind()      claim HOST:PORT          ← failure here is FATAL
    3. listen()    start queueing connections (backlog)
    4. accept()    loop: one new socket per client
    5. close()     release the listening socket

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── bound once at start()
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    Connection 1            Connection 2            Connection 3
    (worker thread)         (worker thread)         (worker thread)

=============================================================================
STOPPING A BLOCKED accept()
=============================================================================

accept() blocks. stop() usually runs on another thread (or inside a signal
handler on the main thread), so it has to get the accept loop to notice.

    stop()
      ├── _stopping.set()            cancellation token
      └── shutdown() + close()       makes a blocked accept() fail now

    accept loop
      ├── accept() returns/raises
      └── _stopping.is_set()?  → exit (the error is expected, not logged)

As a backstop the listening socket has a short timeout, so even on a
platform where closing the socket does not interrupt accept(), the loop
observes the token within `poll_interval` seconds.

A threading.Event replaces a bare running flag: it is safe to set from
any thread and its state is never torn.

stop() only stops NEW connections. Workers already running finish on their
own; their read timeout bounds how long that takes.

=============================================================================
"""

import socket
import logging
import threading
from typing import Callable, Optional, Tuple

from .connection import Connection
from .dispatch import Dispatcher, ThreadPerConnection


logger = logging.getLogger(__name__)


class Listener:
    """
    TCP accept loop with a thread-safe stop().

    Usage:
        listener = Listener(host="0.0.0.0", port=8080)
        threading.Thread(target=listener.start, args=(handle,)).start()
        ...
        listener.stop()

    start() blocks until stop() is called.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8080,
        backlog: int = 128,
        dispatcher: Optional[Dispatcher] = None,
        read_timeout: float = 5.0,
        buffer_size: int = 1024,
        max_header_size: int = 64 * 1024,
        poll_interval: float = 0.5,
    ):
        self.host = host
        self.port = port
        self.backlog = backlog
        self.dispatcher = dispatcher or ThreadPerConnection()

        # Passed through to every Connection
        self.read_timeout = read_timeout
        self.buffer_size = buffer_size
        self.max_header_size = max_header_size

        self.poll_interval = poll_interval

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None
        self._stopping = threading.Event()
        self._ready = threading.Event()
        self._stopped = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._ready.is_set() and not self._stopping.is_set()

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port); the real port once bound, even with port=0."""
        return self._bound_address or (self.host, self.port)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is bound and listening."""
        return self._ready.wait(timeout)

    def wait_until_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop has exited and the socket is closed."""
        return self._stopped.wait(timeout)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Rebind immediately after a restart instead of waiting out
        # TIME_WAIT ("Address already in use")
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Send the (small) response without Nagle's delay
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(self.poll_interval)
        return sock

    def start(self, connection_handler: Callable[[Connection], object]):
        """
        Bind, listen and run the accept loop.

        Args:
            connection_handler: Called on a worker for every connection.

        Raises:
            OSError: The port could not be bound (fatal).
        """
        if self._stopping.is_set():
            logger.info("Listener was stopped before it started")
            self._stopped.set()
            return

        self._socket = self._create_socket()

        try:
            self._socket.bind((self.host, self.port))
            self._socket.listen(self.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.host}:{self.port}: {e}")
            self._cleanup()
            raise

        self._bound_address = self._socket.getsockname()[:2]
        self._ready.set()
        logger.info(f"Listening on {self._bound_address[0]}:{self._bound_address[1]}")

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], object]):
        while not self._stopping.is_set():
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._stopping.is_set():
                    break  # stop() closed the socket under us
                logger.error(f"Accept error: {e}")
                # Back off a little so a persistent error (EMFILE) doesn't spin
                self._stopping.wait(0.05)
                continue

            if self._stopping.is_set():
                client_socket.close()
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.buffer_size,
                timeout=self.read_timeout,
                max_header_size=self.max_header_size,
            )

            try:
                self.dispatcher.submit(connection_handler, conn)
            except RuntimeError as e:
                # Thread limit reached or pool already shut down
                logger.error(f"[{conn.id}] Could not dispatch connection: {e}")
                conn.close()

    def stop(self):
        """
        Stop accepting connections.

        Safe from any thread and from signal handlers; safe to call twice.
        """
        if self._stopping.is_set():
            return
        logger.info("Stopping listener...")
        self._stopping.set()

        sock = self._socket
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # Not connected / not supported for listening sockets
            try:
                sock.close()
            except OSError:
                pass

    def _cleanup(self):
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
        self._stopped.set()
        logger.info("Listener stopped")
