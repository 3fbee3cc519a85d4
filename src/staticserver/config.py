"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every setting the server reads, in one frozen dataclass.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m staticserver --port 3000 --root ./site          │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── STATIC_PORT=3000 STATIC_ROOT=./site                       │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHY FROZEN?
=============================================================================

The config is read by every worker thread at once. Making it immutable
means no worker can ever observe a half-updated document root, and no lock
is needed to read it. The document root is canonicalized exactly once, in
__post_init__, and every request is checked against that one value.

=============================================================================
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the static file server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK       host, port, backlog
    REQUESTS      read_timeout, buffer_size, max_header_size
    FILES         document_root, index_file, case_sensitive
    CONCURRENCY   max_workers
    LOGGING       log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    Address to bind. "0.0.0.0" = every IPv4 interface,
    "127.0.0.1" = local clients only.
    """

    port: int = 8080
    """Port to listen on. 0 lets the OS pick a free one (tests)."""

    backlog: int = 128
    """Pending connections the OS queues before refusing new ones."""

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST READING
    # ─────────────────────────────────────────────────────────────────────

    read_timeout: float = 5.0
    """
    Seconds each recv() may block while reading the request headers.
    A client that sends nothing gets a 400 after this long.
    """

    buffer_size: int = 1024
    """Bytes requested per recv() call."""

    max_header_size: int = 64 * 1024
    """Reading stops once the header block reaches this many bytes."""

    # ─────────────────────────────────────────────────────────────────────
    # FILES
    # ─────────────────────────────────────────────────────────────────────

    document_root: Path = Path("webroot")
    """
    Directory files are served from. Canonicalized at construction.
    Nothing outside it is ever read.
    """

    index_file: str = "index.html"
    """Served for "GET /"."""

    case_sensitive: Optional[bool] = None
    """
    Whether the document root's filesystem distinguishes case, for the
    containment check. None = probe the filesystem at startup.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY
    # ─────────────────────────────────────────────────────────────────────

    max_workers: Optional[int] = None
    """
    None = one thread per connection (unbounded).
    N    = fixed pool of N threads; extra connections wait in a queue.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """Access log format: "text" (Apache-like) or "json"."""

    def __post_init__(self):
        root = Path(os.path.expanduser(str(self.document_root))).resolve()
        object.__setattr__(self, "document_root", root)
        object.__setattr__(self, "log_level", self.log_level.upper())

    @classmethod
    def from_env(cls, **overrides) -> "ServerConfig":
        """
        Build a config from environment variables.

        STATIC_HOST           bind address          (default 0.0.0.0)
        STATIC_PORT           port                  (default 8080)
        STATIC_ROOT           document root         (default ./webroot)
        STATIC_WORKERS        pool size             (default: per-connection)
        STATIC_READ_TIMEOUT   seconds               (default 5)
        STATIC_LOG_LEVEL      logging level         (default INFO)
        STATIC_LOG_FORMAT     text | json           (default text)

        Keyword overrides win over the environment.
        """
        workers = os.getenv("STATIC_WORKERS")
        values = dict(
            host=os.getenv("STATIC_HOST", "0.0.0.0"),
            port=int(os.getenv("STATIC_PORT", "8080")),
            document_root=Path(os.getenv("STATIC_ROOT", "webroot")),
            max_workers=int(workers) if workers else None,
            read_timeout=float(os.getenv("STATIC_READ_TIMEOUT", "5")),
            log_level=os.getenv("STATIC_LOG_LEVEL", "INFO"),
            log_format=os.getenv("STATIC_LOG_FORMAT", "text"),
        )
        values.update(overrides)
        return cls(**values)

    def with_overrides(self, **changes) -> "ServerConfig":
        """Copy with some fields replaced (the original is untouched)."""
        return replace(self, **changes)

    def validate(self) -> None:
        """
        Check every value; raise ValueError on the first bad one.

        Run once at startup so a typo fails immediately instead of on the
        first request.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.read_timeout <= 0:
            raise ValueError("read_timeout must be > 0")

        if self.buffer_size < 1:
            raise ValueError("buffer_size must be >= 1")

        if self.max_header_size < self.buffer_size:
            raise ValueError("max_header_size must be >= buffer_size")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("max_workers must be >= 1 (or None)")

        if not self.index_file or "/" in self.index_file or ".." in self.index_file:
            raise ValueError(f"Invalid index_file: {self.index_file!r}")

        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log_format: {self.log_format}")

        if not self.document_root.is_dir():
            raise ValueError(f"Document root is not a directory: {self.document_root}")
