"""Command line entry point for OrderDesk."""

import argparse
import asyncio
import os
import sys


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orderdesk-mcp-server",
        description="Serve COGA store orders and sign-in over MCP (stdio) or a REST API",
    )
    parser.add_argument(
        "--mode",
        choices=["stdio", "http"],
        default="stdio",
        help="stdio: MCP server for a single operator; http: REST API with one session per client",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Interface the REST API listens on (default: 127.0.0.1, use 0.0.0.0 to expose it)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port of the REST API (default: 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart the REST API when source files change (development only)",
    )
    parser.add_argument(
        "--data-file",
        help='Document store file, overrides ORDERDESK_DATA_FILE ("memory" keeps nothing on disk)',
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level, overrides ORDERDESK_LOG_LEVEL",
    )
    return parser


def main(argv=None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    # Both servers read their settings from the environment, including uvicorn's reload worker
    if args.data_file:
        os.environ["ORDERDESK_DATA_FILE"] = args.data_file
    if args.log_level:
        os.environ["ORDERDESK_LOG_LEVEL"] = args.log_level

    if args.mode == "http":
        from .http_server import run_http_server
        run_http_server(host=args.host, port=args.port, reload=args.reload)
        return

    from .server import main as server_main

    try:
        asyncio.run(server_main())
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    main()
