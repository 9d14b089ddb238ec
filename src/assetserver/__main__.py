"""
=============================================================================
ASSETSERVER CLI ENTRY POINT
=============================================================================

    # Serve ./public on 127.0.0.1:8000
    python -m assetserver

    # Another directory and port, all interfaces
    python -m assetserver --root ./dist --host 0.0.0.0 --port 9000

    # In-memory cache, JSON access log appended to a file
    python -m assetserver --cache --log-format json --access-log access.log

Configuration precedence: command line > ASSET_* environment > defaults.

=============================================================================
EXIT CODES
=============================================================================

    0   stopped by SIGTERM / SIGINT after draining in-flight requests
    1   startup failed: invalid config, missing root, or bind error
    2   bad command line (argparse)

=============================================================================
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig
from .server import AssetServer, setup_logging


logger = logging.getLogger("assetserver")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="assetserver",
        description="Concurrent static asset server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m assetserver                           # ./public on :8000
  python -m assetserver --root ./dist --port 9000
  python -m assetserver --cache --cache-ttl 60
        """,
    )

    # Defaults are None so unset flags fall through to the environment

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--host", "-H", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8000)")
    parser.add_argument("--timeout", type=float, help="Socket read/write timeout in seconds")

    # ─────────────────────────────────────────────────────────────────────
    # SERVING
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument("--root", "-r", help="Directory to serve (default: public)")
    parser.add_argument("--workers", "-w", type=int, help="Long-lived worker threads (default: 32)")
    parser.add_argument("--chunk-size", type=int, help="Streaming chunk size in bytes")

    # ─────────────────────────────────────────────────────────────────────
    # CACHE
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--cache", action=argparse.BooleanOptionalAction, default=None,
        help="Enable the in-memory file cache",
    )
    parser.add_argument("--cache-max-bytes", type=int, help="Cache capacity in bytes")
    parser.add_argument("--cache-ttl", type=float, help="Cache entry TTL in seconds (0 = none)")

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--log-format", choices=["text", "json"], help="Access log format")
    parser.add_argument("--access-log", help="Also append access lines to this file")

    parser.add_argument("--version", "-v", action="version", version=f"assetserver {__version__}")
    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Environment first, then whatever the command line set explicitly."""
    config = ServerConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "timeout": args.timeout,
        "root_dir": args.root,
        "chunk_size": args.chunk_size,
        "cache_enabled": args.cache,
        "cache_max_bytes": args.cache_max_bytes,
        "cache_ttl": args.cache_ttl,
        "log_level": args.log_level,
        "log_format": args.log_format,
        "access_log": args.access_log,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = min(config.min_workers, args.workers)

    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as e:
        # Malformed ASSET_* value (e.g. ASSET_PORT=abc)
        setup_logging()
        logger.error("Invalid configuration: %s", e)
        return 1

    setup_logging(config.log_level)

    try:
        server = AssetServer(config)
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 1
    except OSError as e:
        # Access log file can't be opened
        logger.error("Could not start server: %s", e)
        return 1

    try:
        server.run()
    except OSError as e:
        logger.error("Could not start server: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
