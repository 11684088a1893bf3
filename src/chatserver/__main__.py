"""
=============================================================================
CHAT SERVER CLI ENTRY POINT
=============================================================================

    python -m chatserver                       # 0.0.0.0:5000
    python -m chatserver --port 6000           # Custom port
    python -m chatserver --host 127.0.0.1      # Localhost only
    python -m chatserver --max-clients 200     # More concurrent sessions
    python -m chatserver --outbound-queue      # Per-session writer threads
    python -m chatserver --log-format json     # Machine-readable logs

Unset flags fall back to CHAT_* environment variables (see
ServerConfig.from_env), then to the built-in defaults.

=============================================================================
"""

import argparse
import logging
import sys

from . import __version__
from .server import ChatServer
from .config import ServerConfig, LOG_FORMATS


logger = logging.getLogger("chatserver")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chatserver",
        description="Multi-client TCP chat server with a scripted bot",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m chatserver                      # Run with defaults
  python -m chatserver --port 6000          # Custom port
  python -m chatserver --host 127.0.0.1     # Localhost only
  python -m chatserver --outbound-queue     # Isolate slow clients
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 0.0.0.0)",
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 5000)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONCURRENCY ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--max-clients", "-m",
        type=int,
        default=None,
        help="Maximum concurrent sessions (default: 64)",
    )

    parser.add_argument(
        "--outbound-queue",
        action="store_true",
        default=None,
        help="Give each session its own outbound queue and writer thread",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Log output format (default: text)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"chatserver {__version__}",
    )

    return parser


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then any flag the user actually passed."""
    config = ServerConfig.from_env()

    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.max_clients is not None:
        config.max_clients = args.max_clients
        config.min_workers = min(config.min_workers, args.max_clients)
    if args.outbound_queue:
        config.outbound_queue = True
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format

    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        server = ChatServer(config_from_args(args))
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        server.run()
    except OSError as e:
        # Bind failures are fatal: nothing useful to do without a socket
        logger.error(f"Server failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
