"""Entry point for restore-graph-mcp."""

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys

from .restore import RestoreGraphSession, RestoreSettings
from .server import create_server, load_solution, resolve_projects


def configure_logging(verbose: bool = False) -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "DEBUG" if verbose else "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Restore Graph MCP Server - NuGet restore graphs via MSBuild"
    )
    parser.add_argument(
        "--solution",
        type=str,
        default=None,
        help="Solution file (or directory containing one). "
        "Defaults to the nearest .sln above the current directory.",
    )
    parser.add_argument(
        "--configuration",
        type=str,
        default="Debug",
        help="Solution configuration (default: Debug)",
    )
    parser.add_argument(
        "--platform",
        type=str,
        default="Any CPU",
        help="Solution platform (default: Any CPU)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Run MSBuild with diagnostic verbosity.",
    )
    parser.add_argument(
        "--print",
        dest="print_projects",
        nargs="*",
        metavar="PROJECT",
        default=None,
        help="Print the restore graph as JSON and exit instead of serving MCP. "
        "Without project arguments, all solution projects are included.",
    )
    return parser.parse_args(argv)


async def print_graph(args: argparse.Namespace) -> int:
    """Run one restore graph invocation and print it."""
    solution = load_solution(args.solution, args.configuration, args.platform)
    settings = RestoreSettings.from_environment()
    if args.verbose:
        settings = dataclasses.replace(settings, verbose_logging=True)

    session = RestoreGraphSession(settings=settings)
    projects = resolve_projects(solution, args.print_projects or None)
    result = await session.run(solution, projects)
    if not result.success:
        print(result.to_summary(), file=sys.stderr)
        return result.exit_code or 1

    print(json.dumps(result.graph.to_dict(), indent=2))
    return 0


async def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = logging.getLogger(__name__)

    if args.print_projects is not None:
        return await print_graph(args)

    logger.info(f"Starting Restore Graph MCP Server (solution: {args.solution or 'auto'})...")
    mcp = create_server(args.solution, verbose=args.verbose)

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        logger.info("Server stopped")
    return 0


def run() -> None:
    """Run the server."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
