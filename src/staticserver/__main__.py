"""
=============================================================================
COMMAND-LINE ENTRY POINT
=============================================================================

    python -m staticserver                       # ./webroot on port 8080
    python -m staticserver --port 3000 --root ./public
    python -m staticserver --workers 16          # bounded thread pool
    staticserver --log-level DEBUG               # installed console script

Environment variables (STATIC_PORT, STATIC_ROOT, ...) fill in anything not
given on the command line; see ServerConfig.from_env().

If the document root does not exist it is created, so a fresh checkout can
be served right away. Ctrl+C (SIGINT) or SIGTERM stops the server.

=============================================================================
"""

import argparse
import sys
from pathlib import Path

from . import __version__
from .config import ServerConfig, LOG_LEVELS, LOG_FORMATS
from .server import StaticServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="staticserver",
        description="Minimal static file server (GET only, .html/.css/.js)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m staticserver                          # Serve ./webroot on :8080
  python -m staticserver -p 3000 -r ./public      # Custom port and root
  python -m staticserver --host 127.0.0.1         # Local clients only
  python -m staticserver -w 16                    # At most 16 worker threads
        """,
    )

    parser.add_argument("--host", "-H", default=None,
                        help="Address to bind (default: 0.0.0.0)")
    parser.add_argument("--port", "-p", type=int, default=None,
                        help="Port to listen on (default: 8080)")
    parser.add_argument("--root", "-r", default=None,
                        help="Document root (default: ./webroot, created if missing)")
    parser.add_argument("--workers", "-w", type=int, default=None,
                        help="Worker pool size (default: one thread per connection)")
    parser.add_argument("--timeout", "-t", type=float, default=None,
                        help="Request read timeout in seconds (default: 5)")
    parser.add_argument("--log-level", "-l", choices=LOG_LEVELS, default=None,
                        help="Logging level (default: INFO)")
    parser.add_argument("--log-format", choices=LOG_FORMATS, default=None,
                        help="Access log format (default: text)")
    parser.add_argument("--version", "-v", action="version",
                        version=f"staticserver {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment config, overridden by whatever was given on the CLI."""
    overrides = {
        "host": args.host,
        "port": args.port,
        "document_root": Path(args.root) if args.root else None,
        "max_workers": args.workers,
        "read_timeout": args.timeout,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    return ServerConfig.from_env(**{k: v for k, v in overrides.items() if v is not None})


def ensure_document_root(root: Path) -> bool:
    """Create the document root if it is missing. False if that fails."""
    if root.is_dir():
        return True
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"Error creating document root {root}: {e}", file=sys.stderr)
        return False
    print(f"Created document root at: {root}")
    return True


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if not ensure_document_root(config.document_root):
        return 1

    try:
        server = StaticServer(config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        server.run(install_signal_handlers=True)
    except OSError as e:
        print(f"Error: could not start server: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
