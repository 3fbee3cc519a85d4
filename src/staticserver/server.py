"""
=============================================================================
STATIC SERVER
=============================================================================

Wires the components together and owns the server lifecycle.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   ServerConfig ──► StaticServer                                      │
    │                       │                                              │
    │                       ├── Listener          accept loop, stop()      │
    │                       │      └── Dispatcher one worker per conn      │
    │                       │                                              │
    │                       └── ConnectionHandler per-connection pipeline  │
    │                              ├── RequestParser                       │
    │                              ├── PathResolver ── ContentTypeRegistry │
    │                              ├── ResponseWriter                      │
    │                              └── AccessLogger                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

    run()                          blocks
      ├── configure logging
      ├── install SIGINT/SIGTERM handlers (optional, main thread only)
      ├── Listener.start(handler.handle)   ← bind errors raise here
      └── finally: restore signals, wait for in-flight workers

    stop()                         any thread, signal handler, or test
      └── Listener.stop()          no new connections; workers finish

=============================================================================
"""

import signal
import logging
import threading
from typing import Optional, Tuple

from .access_log import AccessLogger
from .config import ServerConfig
from .core import Listener, create_dispatcher
from .handler import ConnectionHandler
from .http import ContentTypeRegistry, PathResolver


logger = logging.getLogger(__name__)


class StaticServer:
    """
    Static file server.

    Usage:
        server = StaticServer(ServerConfig(port=8080, document_root="./site"))
        server.run(install_signal_handlers=True)   # blocks until Ctrl+C

    In tests, run it on a thread and use an OS-assigned port:

        server = StaticServer(ServerConfig(host="127.0.0.1", port=0, ...))
        threading.Thread(target=server.run, daemon=True).start()
        server.wait_until_ready(5)
        host, port = server.address
        ...
        server.stop()
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        registry: Optional[ContentTypeRegistry] = None,
        worker_join_timeout: float = 10.0,
    ):
        """
        Args:
            config: Server configuration; validated here (fail-fast).
            registry: Extension whitelist. Defaults to .html/.css/.js.
            worker_join_timeout: How long run() waits for in-flight
                                 workers after the listener stops.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self.registry = registry or ContentTypeRegistry()
        self.worker_join_timeout = worker_join_timeout

        self.resolver = PathResolver(
            self.config.document_root,
            registry=self.registry,
            index_file=self.config.index_file,
            case_sensitive=self.config.case_sensitive,
        )

        self.handler = ConnectionHandler(
            self.resolver,
            access_log=AccessLogger(log_format=self.config.log_format),
        )

        self._dispatcher = create_dispatcher(self.config.max_workers)
        self._listener = Listener(
            host=self.config.host,
            port=self.config.port,
            backlog=self.config.backlog,
            dispatcher=self._dispatcher,
            read_timeout=self.config.read_timeout,
            buffer_size=self.config.buffer_size,
            max_header_size=self.config.max_header_size,
        )

        self._original_handlers: dict = {}

    # =========================================================================
    # STATE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._listener.is_running

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port). With port=0 this is the OS-assigned port."""
        return self._listener.address

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._listener.wait_until_ready(timeout)

    def wait_until_stopped(self, timeout: Optional[float] = None) -> bool:
        return self._listener.wait_until_stopped(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self, install_signal_handlers: bool = False, configure_logging: bool = True):
        """
        Serve until stop() is called. Blocks.

        Args:
            install_signal_handlers: Translate SIGINT/SIGTERM into stop().
                                     Only possible on the main thread.
            configure_logging: Set up logging from config (basicConfig).

        Raises:
            OSError: The port could not be bound.
        """
        if configure_logging:
            self._setup_logging()

        if install_signal_handlers:
            self._setup_signals()

        logger.info(f"Serving files from {self.config.document_root}")
        if self.config.max_workers is None:
            logger.debug("Dispatch: one thread per connection")
        else:
            logger.debug(f"Dispatch: pool of {self.config.max_workers} workers")

        try:
            self._listener.start(self.handler.handle)
        finally:
            self._restore_signals()
            self._dispatcher.shutdown(wait=True, timeout=self.worker_join_timeout)
            logger.info("Server stopped")

    start = run

    def stop(self):
        """Stop accepting connections. Safe from any thread; idempotent."""
        self._listener.stop()

    # =========================================================================
    # LOGGING AND SIGNALS
    # =========================================================================

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("staticserver").setLevel(level)

    def _setup_signals(self):
        """
        SIGINT (Ctrl+C) and SIGTERM (kill, docker stop) → stop().

        The handler only sets the stop token and closes the listening
        socket; in-flight requests are left to finish.
        """
        if threading.current_thread() is not threading.main_thread():
            logger.warning("Signal handlers can only be installed from the main thread")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, shutting down...")
            self.stop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()
