from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
from pathlib import Path

import anyio
import uvicorn

from pgportal.app import create_app
from pgportal.config import Settings, load_settings, resolve_config_path, resolve_database_url
from pgportal.db.executor import ExecutionWrapper
from pgportal.db.router import ConnectionRouter
from pgportal.db.targets import RoutingContext, TargetIdentity
from pgportal.errors import ConfigError
from pgportal.mcp import GatewayTools, build_session_server
from pgportal.policy.permissions import Grant

logger = logging.getLogger(__name__)


def _is_shutdown_noise(exc: BaseException) -> bool:
    if isinstance(exc, asyncio.CancelledError | KeyboardInterrupt | GeneratorExit):
        return True
    if isinstance(exc, BaseExceptionGroup):
        return all(_is_shutdown_noise(sub_exc) for sub_exc in exc.exceptions)
    return False


class NoisyShutdownFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if record.exc_info:
            _, exc, _ = record.exc_info
            if exc is not None and _is_shutdown_noise(exc):
                return False
        return True


def configure_parser(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("serve", help="Run the Postgres MCP gateway")
    parser.set_defaults(func=run_serve)
    parser.add_argument(
        "database_url",
        nargs="?",
        help="Default database URL (lowest precedence after ?db= and DATABASE_URL)",
    )
    parser.add_argument(
        "--http",
        dest="http_mode",
        action="store_true",
        help="Serve SSE sessions over HTTP instead of stdio (or set MCP_HTTP_MODE=true)",
    )
    parser.add_argument("--host", help="Host to bind in HTTP mode")
    parser.add_argument("--port", type=int, help="Port to bind in HTTP mode (or set PORT)")
    parser.add_argument(
        "--permissions",
        default=None,
        help="Comma-separated grant for stdio mode: read, ddl, dml (default: read)",
    )
    parser.add_argument("--config", type=Path, help="Path to pgportal.toml")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")


def _configure_logging(*, verbose: bool, stderr: bool) -> logging.Handler:
    from rich.console import Console
    from rich.logging import RichHandler

    # stdout carries the MCP protocol in stdio mode
    console = Console(stderr=True) if stderr else None
    rich_handler = RichHandler(console=console, rich_tracebacks=False, markup=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[rich_handler],
    )

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(logger_name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True

    rich_handler.addFilter(NoisyShutdownFilter())
    return rich_handler


def run_serve(args: argparse.Namespace) -> int:
    settings = load_settings(
        args.config,
        cli_overrides={
            "http_mode": args.http_mode,
            "host": args.host,
            "port": args.port,
            "database_url": args.database_url,
        },
    )
    _configure_logging(verbose=args.verbose, stderr=not settings.http_mode)

    if settings.http_mode:
        return run_http(settings, config_path=resolve_config_path(args.config))
    return run_stdio(settings, permissions=args.permissions)


def run_http(settings: Settings, *, config_path: Path | None = None) -> int:
    from pgportal.cli.ui import console, print_banner

    if not settings.secret_configured:
        raise ConfigError("MCP_SECRET environment variable is required for HTTP mode")

    print_banner(settings, config_path)
    app = create_app(settings=settings)
    console.print()

    with contextlib.suppress(KeyboardInterrupt, asyncio.CancelledError):
        uvicorn.run(
            app,
            host=settings.http.host,
            port=settings.http.port,
            log_level="info",
            access_log=False,
            log_config=None,
        )
    return 0


async def serve_stdio(settings: Settings, context: RoutingContext) -> None:
    """Run a single session over stdin/stdout until the client disconnects."""
    from mcp.server.stdio import stdio_server

    router = ConnectionRouter(settings.pool)
    tools = GatewayTools(ExecutionWrapper(router, schema_name=settings.schema_name))
    server = build_session_server(
        context, tools, allow_in_band_target=settings.allow_in_band_target
    )
    try:
        await router.install(context)
        logger.info(
            "Serving %s over stdio with permissions [%s]",
            context.target,
            context.grant.describe(),
        )
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await router.close()


def run_stdio(settings: Settings, *, permissions: str | None = None) -> int:
    target = TargetIdentity.parse(resolve_database_url(settings))
    context = RoutingContext(target=target, grant=Grant.parse(permissions))
    with contextlib.suppress(KeyboardInterrupt):
        anyio.run(serve_stdio, settings, context)
    return 0
