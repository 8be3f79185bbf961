"""CLI entry point for reqlog.

Provides the ``reqlog`` console script:

- ``serve``: Run the demo app under uvicorn with request logging

Usage::

    # Indented documents on stdout, diagnostics on stderr
    reqlog serve --port 8000

    # One document per line, client address from X-Forwarded-For
    reqlog serve --compact --trust-forwarded
"""

from __future__ import annotations

import argparse
import sys

import uvicorn

from reqlog.config import ReqlogConfig
from reqlog.observability import configure_logging, get_logger

LOG_LEVELS = ["critical", "error", "warning", "info", "debug"]


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="reqlog",
        description="reqlog - per-request JSON logging with crash containment",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    serve_parser = subparsers.add_parser("serve", help="Run the demo app")
    serve_parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Interface to bind (default: 127.0.0.1)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to bind (default: 8000)",
    )
    serve_parser.add_argument(
        "--log-level",
        type=str,
        choices=LOG_LEVELS,
        default="warning",
        help="Level for reqlog and uvicorn diagnostics (default: warning)",
    )
    serve_parser.add_argument(
        "--compact",
        action="store_true",
        help="Emit each request log on a single line",
    )
    serve_parser.add_argument(
        "--trust-forwarded",
        action="store_true",
        help="Take the client address from X-Forwarded-For / X-Real-IP",
    )
    serve_parser.add_argument(
        "--json-diagnostics",
        action="store_true",
        help="Format reqlog's own diagnostics as JSON",
    )
    return parser


def run_serve(args: argparse.Namespace) -> None:
    """Configure logging and run the demo app until interrupted."""
    configure_logging(
        level=args.log_level.upper(),
        json_format=args.json_diagnostics,
        force=True,
    )
    logger = get_logger(__name__)

    overrides: dict[str, object] = {}
    if args.compact:
        overrides["indent"] = None
    if args.trust_forwarded:
        overrides["trust_forwarded"] = True
    config = ReqlogConfig.from_env(**overrides)

    from reqlog.web.app import create_app

    app = create_app(config)
    logger.info("Starting demo server", host=args.host, port=args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code: 0 on success, 2 when no subcommand was given.

    Example:
        >>> main(["serve", "--port", "9000"])  # blocks until Ctrl-C
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        run_serve(args)
        return 0

    parser.print_help(sys.stderr)
    return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
