"""MCP Server exposing NuGet restore graph generation."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from collections import deque

from mcp.server.fastmcp import Context, FastMCP
from pydantic import AnyUrl

from .restore import RestoreGraphSession, RestoreResult, RestoreSettings
from .solution import Solution, SolutionConfiguration, find_solution

logger = logging.getLogger(__name__)

LAST_RESULT_URI = "restore://last-result"
OUTPUT_TAIL_LINES = 50

# Server-wide defaults (set in create_server)
_initial_solution: str | None = None
_verbose_default: bool = False

# Running sessions, for cancel_restore_graph
_active_sessions: set[RestoreGraphSession] = set()
_last_result: RestoreResult | None = None


def load_solution(
    solution: str | None,
    configuration: str = "Debug",
    platform: str = "Any CPU",
) -> Solution:
    """Load the requested solution, falling back to the server's default.

    Raises:
        FileNotFoundError: If no solution can be found
    """
    path = solution or _initial_solution or find_solution()
    if not path:
        raise FileNotFoundError("No solution specified and no .sln found")
    if os.path.isdir(path):
        found = find_solution(path)
        if not found:
            raise FileNotFoundError(f"No .sln found in {path}")
        path = found
    return Solution.load(path, SolutionConfiguration(configuration, platform))


def resolve_projects(solution: Solution, projects: list[str] | None) -> list[str] | None:
    """Make project paths absolute relative to the solution directory."""
    if projects is None:
        return None
    return [
        p if os.path.isabs(p) else os.path.normpath(os.path.join(solution.base_directory, p))
        for p in projects
    ]


async def run_restore_graph(
    solution: Solution,
    projects: list[str] | None = None,
    verbose: bool = False,
) -> tuple[RestoreResult, list[str]]:
    """Run one restore graph invocation in its own session.

    Returns:
        Result and the tail of the MSBuild output
    """
    global _last_result
    settings = RestoreSettings.from_environment()
    if verbose or _verbose_default:
        settings = dataclasses.replace(settings, verbose_logging=True)

    output: deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
    session = RestoreGraphSession(settings=settings)
    _active_sessions.add(session)
    try:
        result = await session.run(solution, projects, output=output.append)
    finally:
        _active_sessions.discard(session)

    _last_result = result
    return result, list(output)


async def cancel_all() -> int:
    """Cancel every running restore graph invocation."""
    cancelled = 0
    for session in list(_active_sessions):
        if await session.cancel():
            cancelled += 1
    return cancelled


def create_server(solution_path: str | None = None, verbose: bool = False) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        solution_path: Default solution (or directory containing one)
        verbose: Run MSBuild with diagnostic verbosity by default
    """
    global _initial_solution, _verbose_default
    _initial_solution = solution_path
    _verbose_default = verbose
    mcp = FastMCP("restore-graph-mcp")

    async def notify_result_changed(ctx: Context) -> None:
        """Notify client that restore://last-result has changed."""
        try:
            if ctx.session:
                await ctx.session.send_resource_updated(AnyUrl(LAST_RESULT_URI))
        except Exception:
            pass  # Notification failure shouldn't break the tool

    @mcp.tool()
    async def get_restore_graph(
        ctx: Context,
        solution: str | None = None,
        projects: list[str] | None = None,
        configuration: str = "Debug",
        platform: str = "Any CPU",
        verbose: bool = False,
    ) -> dict:
        """
        Compute the NuGet restore graph for projects in a solution.

        Runs MSBuild's GenerateRestoreGraphFile target; nothing is downloaded
        or restored.

        Args:
            solution: Path to the .sln (or its directory). Defaults to the server's solution.
            projects: Project files to include (relative to the solution). Defaults to all.
            configuration: Solution configuration name
            platform: Solution platform
            verbose: Run MSBuild with diagnostic verbosity
        """
        try:
            sln = load_solution(solution, configuration, platform)
            result, tail = await run_restore_graph(sln, resolve_projects(sln, projects), verbose)
            await notify_result_changed(ctx)
            if not result.success:
                return {"success": False, "error": result.to_summary(), "output": tail}
            return {"success": True, "data": result.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_project_packages(
        ctx: Context,
        project: str,
        solution: str | None = None,
        framework: str | None = None,
        configuration: str = "Debug",
        platform: str = "Any CPU",
    ) -> dict:
        """
        List the packages a project would restore, including referenced projects.

        Args:
            project: Project file (relative to the solution or absolute)
            solution: Path to the .sln (or its directory)
            framework: Only report this target framework (e.g. net8.0)
            configuration: Solution configuration name
            platform: Solution platform
        """
        try:
            sln = load_solution(solution, configuration, platform)
            project_paths = resolve_projects(sln, [project]) or []
            result, tail = await run_restore_graph(sln, project_paths)
            await notify_result_changed(ctx)
            if not result.success or result.graph is None:
                return {"success": False, "error": result.to_summary(), "output": tail}

            closure = result.graph.get_closure(project_paths[0])
            if not closure:
                return {"success": False, "error": f"Project not in restore graph: {project}"}
            return {
                "success": True,
                "data": {
                    spec.name: {
                        "path": spec.path,
                        "packages": spec.package_dependencies(framework),
                    }
                    for spec in closure
                },
            }
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def cancel_restore_graph() -> dict:
        """Cancel running restore graph invocations."""
        cancelled = await cancel_all()
        return {"success": True, "data": {"cancelled": cancelled}}

    @mcp.resource(LAST_RESULT_URI, mime_type="application/json")
    async def last_result_resource() -> str:
        """Result of the last restore graph invocation."""
        if _last_result is None:
            return json.dumps({"state": None}, indent=2)
        return json.dumps(_last_result.to_dict(), indent=2)

    return mcp
