"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The socket plumbing underneath the HTTP logic:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                            LISTENER                                  │
    │  • Binds HOST:PORT, runs the accept() loop                           │
    │  • stop() from any thread ends the loop                              │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ each accepted socket
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                           DISPATCHER                                 │
    │  • ThreadPerConnection (default) or BoundedThreadPool                │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ on a worker thread
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                           CONNECTION                                 │
    │  • Buffered header read with timeout and size cap                    │
    │  • Failure-tolerant send, idempotent close                           │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .dispatch import (
    Dispatcher,
    ThreadPerConnection,
    BoundedThreadPool,
    create_dispatcher,
)
from .listener import Listener


__all__ = [
    "Connection",           # Client socket wrapper - reads/writes/closes
    "ConnectionState",      # Connection lifecycle enum
    "Dispatcher",           # Worker policy interface
    "ThreadPerConnection",  # One thread per connection (default)
    "BoundedThreadPool",    # Fixed-size worker pool
    "create_dispatcher",
    "Listener",             # Accept loop with thread-safe stop()
]
