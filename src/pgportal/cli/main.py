from __future__ import annotations

import argparse
import os

from pgportal.cli.serve import configure_parser as configure_serve

TRACE_VALUES = {"1", "true", "TRUE", "yes", "YES"}


def build_parser() -> argparse.ArgumentParser:
    from pgportal import __version__

    parser = argparse.ArgumentParser(
        prog="pgportal",
        description="Multi-session MCP gateway for remote Postgres databases",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Print version and exit",
    )
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Print full traceback on errors (or set PGPORTAL_TRACE=1)",
    )
    subparsers = parser.add_subparsers(dest="command")

    configure_serve(subparsers)

    return parser


def _tip_for(exc: Exception) -> str:
    text = str(exc)
    if "MCP_SECRET" in text:
        return "Export MCP_SECRET before starting in HTTP mode."
    if "Database URL must be provided" in text:
        return "Pass a postgres:// URL as an argument or set DATABASE_URL."
    if "Connection refused" in text:
        return "Ensure the Postgres server is running and reachable."
    if isinstance(exc, FileNotFoundError):
        return "Check that your config file path is correct."
    return "re-run with --trace to see the full traceback."


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 2

    want_trace = bool(getattr(args, "trace", False)) or os.environ.get("PGPORTAL_TRACE") in TRACE_VALUES
    try:
        return int(args.func(args))
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        if want_trace:
            from rich.console import Console

            Console(stderr=True).print_exception()
        else:
            from pgportal.cli.ui import print_error

            print_error(type(exc).__name__, str(exc), tip=_tip_for(exc))
        return 1
