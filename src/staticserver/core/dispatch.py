"""
=============================================================================
DISPATCH POLICIES
=============================================================================

How an accepted connection gets a worker.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  ThreadPerConnection (default)                                      │
    │  ─────────────────────────────                                      │
    │  accept() ──► Thread(handle, conn).start()                          │
    │                                                                      │
    │  + simplest possible model, no queueing delay                        │
    │  - UNBOUNDED: 10k slow clients = 10k threads. No backpressure.      │
    │    Each worker is still bounded in time by the read timeout.        │
    ├─────────────────────────────────────────────────────────────────────┤
    │  BoundedThreadPool(max_workers)                                     │
    │  ──────────────────────────────                                     │
    │  accept() ──► executor.submit(handle, conn) ──► queue ──► N workers │
    │                                                                      │
    │  + thread count capped at max_workers                                │
    │  - connections wait in the queue while all workers are busy          │
    └─────────────────────────────────────────────────────────────────────┘

The wire behavior is identical under both. Pick one with
ServerConfig.max_workers (None = thread per connection).

Workers share nothing mutable: each gets its own Connection, and the
resolver/registry/config they read are never written after startup.

=============================================================================
"""

import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional

from .connection import Connection


logger = logging.getLogger(__name__)


ConnectionCallback = Callable[[Connection], object]


def _run_guarded(handler: ConnectionCallback, conn: Connection):
    """Run a handler; an escaped exception is logged and the socket closed."""
    try:
        handler(conn)
    except Exception:
        logger.exception(f"[{conn.id}] Unhandled error in connection worker")
        conn.close()


class Dispatcher(ABC):
    """Abstract base: hand connections to workers, wait for them on shutdown."""

    @abstractmethod
    def submit(self, handler: ConnectionCallback, conn: Connection) -> None:
        """Run handler(conn) on a worker. RuntimeError if shut down."""
        pass

    @abstractmethod
    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Stop taking work; optionally wait for running workers."""
        pass


class ThreadPerConnection(Dispatcher):
    """
    One daemon thread per connection.

    submit() and shutdown() are called from the accept-loop thread only,
    so the list of threads needs no lock.
    """

    def __init__(self):
        self._threads: List[threading.Thread] = []

    def submit(self, handler: ConnectionCallback, conn: Connection) -> None:
        # Forget finished workers so the list doesn't grow forever
        self._threads = [t for t in self._threads if t.is_alive()]

        thread = threading.Thread(
            target=_run_guarded,
            args=(handler, conn),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        thread.start()
        self._threads.append(thread)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        if not wait:
            return
        for thread in self._threads:
            thread.join(timeout)
        self._threads = [t for t in self._threads if t.is_alive()]
        if self._threads:
            logger.warning(f"{len(self._threads)} connection worker(s) still running")


class BoundedThreadPool(Dispatcher):
    """A fixed-size pool; excess connections queue until a worker frees up."""

    def __init__(self, max_workers: int):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="conn",
        )

    def submit(self, handler: ConnectionCallback, conn: Connection) -> None:
        self._executor.submit(_run_guarded, handler, conn)

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        # ThreadPoolExecutor.shutdown has no timeout; workers are bounded
        # by the read timeout anyway
        self._executor.shutdown(wait=wait)


def create_dispatcher(max_workers: Optional[int] = None) -> Dispatcher:
    """ThreadPerConnection for None, BoundedThreadPool otherwise."""
    if max_workers is None:
        return ThreadPerConnection()
    return BoundedThreadPool(max_workers)
