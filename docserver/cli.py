"""Command line for the documentation server.

Parses the transport options, configures logging and runs the chosen
transport until it is stopped.
"""

import argparse
import logging
import sys

import anyio
from fastmcp.utilities.logging import configure_logging

from docserver.server import create_server
from docserver.settings import server_settings, transport_settings
from docserver.transport import SseTransportServer
from docserver.types import BrokenInvariant

logger = logging.getLogger(__name__)

TRANSPORTS = ("stdio", "sse")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def port_number(value: str) -> int:
    """argparse type for a TCP port."""
    try:
        port = int(value)
    except ValueError:
        port = 0
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError("Port must be a number between 1 and 65535")
    return port


def idle_seconds(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        seconds = -1.0
    if seconds < 0:
        raise argparse.ArgumentTypeError("Idle timeout must be a non-negative number of seconds")
    return seconds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docserver",
        description=f"{server_settings.name} - documentation tools over MCP",
        epilog="Example: docserver --transport sse --port 3000",
    )
    parser.add_argument(
        "-t",
        "--transport",
        choices=TRANSPORTS,
        default="stdio",
        help="Transport to serve on (default: stdio)",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=port_number,
        default=transport_settings.port,
        help=f"Port for the SSE transport (default: {transport_settings.port})",
    )
    parser.add_argument(
        "--host",
        default=transport_settings.host,
        help=f"Host for the SSE transport (default: {transport_settings.host})",
    )
    parser.add_argument(
        "--idle-timeout",
        type=idle_seconds,
        default=transport_settings.idle_timeout,
        help=f"Seconds before an idle SSE session is closed, 0 disables (default: {transport_settings.idle_timeout})",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=server_settings.log_level.upper(),
        help=f"Log level (default: {server_settings.log_level.upper()})",
    )
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def setup_logging(level: str) -> None:
    configure_logging(level=level)  # fastmcp logger
    configure_logging(level=level, logger=logging.getLogger("docserver"))  # docserver logger


async def serve(args: argparse.Namespace) -> None:
    """Run the selected transport until it stops."""
    if args.transport == "stdio":
        logger.info(f"{server_settings.name} running on stdio")
        await create_server().run_async(transport="stdio")
        return

    transport = transport_settings.model_copy(update={"idle_timeout": args.idle_timeout})
    server = SseTransportServer(host=args.host, port=args.port, transport=transport)
    await server.serve()


def run_server(argv: list[str] | None = None) -> None:
    """Parse arguments and serve. Exits 1 when the server cannot start."""
    args = parse_args(argv)
    setup_logging(args.log_level)
    try:
        anyio.run(serve, args)
    except BrokenInvariant as e:
        logger.error(f"Failed to start server: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted")
