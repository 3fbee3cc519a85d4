"""
=============================================================================
STATICSERVER - Minimal Static File HTTP Server
=============================================================================

Serves .html, .css and .js files from one directory over raw sockets.
GET only, one request per connection, nothing outside the document root.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    staticserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m staticserver)
    ├── server.py            # StaticServer: wiring and lifecycle
    ├── handler.py           # ConnectionHandler: per-connection pipeline
    ├── config.py            # ServerConfig frozen dataclass
    ├── access_log.py        # One access log line per connection
    ├── core/                # Socket plumbing
    │   ├── listener.py      # Accept loop with thread-safe stop()
    │   ├── dispatch.py      # Thread-per-connection / bounded pool
    │   └── connection.py    # Header reading, sending, closing
    └── http/                # Protocol pieces (no sockets)
        ├── request.py       # Request line parsing
        ├── paths.py         # Untrusted target → file in document root
        ├── mime_types.py    # Extension whitelist
        ├── response.py      # Response serialization and writing
        └── status_codes.py  # The six status codes we send

=============================================================================
QUICK START
=============================================================================

    from staticserver import StaticServer, ServerConfig

    server = StaticServer(ServerConfig(port=8080, document_root="./site"))
    server.run(install_signal_handlers=True)

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import StaticServer

__all__ = ["StaticServer", "ServerConfig", "__version__"]
