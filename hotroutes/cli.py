import argparse
import asyncio
import inspect
import logging
import os
import sys

import uvicorn

from hotroutes import __version__
from hotroutes.app_factory import create_app
from hotroutes.config import DEFAULT_CONFIG_FILE, RoutesConfigError, load_options
from hotroutes.discovery import discover_routes
from hotroutes.exceptions import RouteDefinitionError
from hotroutes.loader import RouteLoader
from hotroutes.registry import Registry

logger = logging.getLogger("hotroutes")


def setup_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    if level.upper() == "DEBUG":
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
        )
    handler.setFormatter(formatter)
    logger.handlers = [handler]
    logger.setLevel(level.upper())
    logger.propagate = False


def describe_kind(descriptor) -> str:
    if descriptor.include:
        return "include"
    if descriptor.roles:
        return ",".join(descriptor.roles)
    if descriptor.web_socket:
        return "websocket"
    return "page"


def handle_routes_command(args_ns) -> None:
    """Handles the 'routes' command."""
    try:
        registry = Registry(discover_routes(RouteLoader(args_ns.routes_dir)))
    except (FileNotFoundError, RouteDefinitionError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if not len(registry):
        print(f"No route modules found in {args_ns.routes_dir}")
        return

    for descriptor in registry:
        path = descriptor.display_path or "-"
        capabilities = ", ".join(sorted(descriptor.capabilities)) or "-"
        print(f"{describe_kind(descriptor):<12} {path:<24} {capabilities:<32} {descriptor.file}")


async def handle_serve_command(args_ns) -> None:
    """Handles the 'serve' command."""
    logger.debug("Serve command started.")

    try:
        options = load_options(args_ns.config, hot=True if args_ns.hot else None)
    except RoutesConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    app = create_app(args_ns.routes_dir, options)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=args_ns.host,
            port=args_ns.port,
            log_level=args_ns.log_level.lower(),
            lifespan="on",
        )
    )

    logger.info(f"Serving {args_ns.routes_dir} on {args_ns.host}:{args_ns.port} (hot={options['hot']})")
    await server.serve()
    if not server.started:
        # Startup failed, most likely a malformed route module.
        sys.exit(1)


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="hotroutes",
        description="Serve a directory of route modules.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )

    subparsers = parser.add_subparsers(title="commands", dest="command", help="Command to execute")

    routes_parser = subparsers.add_parser("routes", help="List the route modules found in a directory.")
    routes_parser.add_argument("routes_dir", help="Directory holding the route modules.")
    routes_parser.set_defaults(func=handle_routes_command)

    serve_parser = subparsers.add_parser("serve", help="Serve a directory of route modules.")
    serve_parser.add_argument("routes_dir", help="Directory holding the route modules.")
    serve_parser.add_argument(
        "--host",
        help="Bind socket to this host. Default: 127.0.0.1",
        default="127.0.0.1",
    )
    serve_parser.add_argument(
        "--port",
        "-p",
        type=int,
        help="Bind socket to this port. Default: 8000",
        default=8000,
    )
    serve_parser.add_argument(
        "--hot",
        action="store_true",
        help="Reload route modules whose files changed before handling each request.",
    )
    serve_parser.add_argument(
        "--config",
        "-c",
        help=f"Path to config file. Default: ./{DEFAULT_CONFIG_FILE}",
        default=DEFAULT_CONFIG_FILE,
    )
    serve_parser.add_argument(
        "--log-level",
        help="Log level for the server. Default: INFO",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    serve_parser.set_defaults(func=handle_serve_command)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = create_parser()
    args_ns = parser.parse_args(argv)

    level = "DEBUG" if args_ns.debug or os.getenv("HOTROUTES_DEBUG") else getattr(args_ns, "log_level", "INFO")
    setup_logging(level)
    logger.debug("Debug logging enabled.")

    if not hasattr(args_ns, "func"):
        parser.print_help()
        sys.exit(1)

    handler = args_ns.func
    if inspect.iscoroutinefunction(handler):
        asyncio.run(handler(args_ns))
    else:
        handler(args_ns)


if __name__ == "__main__":
    main()
