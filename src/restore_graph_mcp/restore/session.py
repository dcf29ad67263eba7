"""Restore graph session - drives MSBuild to produce a DependencyGraphSpec.

State machine:
CREATED → MANIFEST_WRITTEN → PROCESS_RUNNING → SUCCEEDED | FAILED | CANCELLED

Both temp files (manifest and graph output) are owned by one ExitStack
and removed on every exit path, including failures before MSBuild starts.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Iterable

from ..solution import Solution, SolutionConfiguration
from .arguments import build_msbuild_arguments
from .graph import DependencyGraphSpec, read_dependency_graph
from .manifest import RestoreManifest
from .platform import PlatformResolver
from .process import OutputSink, ProcessRunner
from .properties import create_restore_properties
from .settings import RestoreSettings
from .state import RestoreCancelledError, RestoreGraphError, RestoreResult, RestoreState
from .tempfiles import scoped_temp_file

logger = logging.getLogger(__name__)

MANIFEST_SUFFIX = ".nugetinputs.targets"
OUTPUT_SUFFIX = ".output.dg"


class RestoreGraphSession:
    """Generates restore graphs for a solution's projects.

    Holds no state shared between invocations other than the immutable
    settings snapshot, so separate sessions may run concurrently.
    """

    def __init__(
        self,
        settings: RestoreSettings | None = None,
        resolver: PlatformResolver | None = None,
        runner: ProcessRunner | None = None,
        temp_dir: str | None = None,
    ):
        """Initialize restore graph session.

        Args:
            settings: Settings snapshot (read from the environment if not provided)
            resolver: MSBuild location resolver
            runner: Process runner
            temp_dir: Directory for the manifest and output files
        """
        self._settings = settings or RestoreSettings.from_environment()
        self._resolver = resolver or PlatformResolver()
        self._runner = runner or ProcessRunner()
        self._temp_dir = temp_dir
        self._state = RestoreState.CREATED
        self._cancel_event: asyncio.Event | None = None
        self._last_result: RestoreResult | None = None
        self._state_listeners: list[Callable[[RestoreState], None]] = []

    @property
    def state(self) -> RestoreState:
        """Current invocation state."""
        return self._state

    @property
    def settings(self) -> RestoreSettings:
        return self._settings

    @property
    def last_result(self) -> RestoreResult | None:
        """Result of the last run() call."""
        return self._last_result

    @property
    def is_running(self) -> bool:
        return self._cancel_event is not None

    def on_state_change(self, listener: Callable[[RestoreState], None]) -> None:
        """Register state change listener."""
        self._state_listeners.append(listener)

    def _set_state(self, new_state: RestoreState) -> None:
        """Update state and notify listeners."""
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.debug(f"Restore graph state: {old_state.value} -> {new_state.value}")
            for listener in self._state_listeners:
                try:
                    listener(new_state)
                except Exception:
                    logger.exception("State listener error")

    async def get_solution_restore_spec(
        self,
        solution: Solution,
        projects: Iterable[str] | None = None,
        configuration: SolutionConfiguration | None = None,
        *,
        output: OutputSink | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> DependencyGraphSpec:
        """Run GenerateRestoreGraphFile for projects and parse the result.

        Args:
            solution: Solution the projects belong to (MSBuild runs in its directory)
            projects: MSBuild project paths (defaults to all solution projects)
            configuration: Resolved configuration (defaults to the solution's active one)
            output: Receives MSBuild output lines
            cancel_event: Set to cancel; cancel() sets it as well

        Returns:
            Parsed dependency graph

        Raises:
            RestoreConfigurationError: Required property missing, nothing started
            MSBuildResolutionError: MSBuild or runtime not found
            MSBuildExitError: MSBuild exited with a non-zero code
            RestoreCancelledError: Cancelled while MSBuild was running
            RestoreTimeoutError: MSBuild exceeded the configured timeout
            RestoreGraphParseError: Output missing or malformed
        """
        if self.is_running:
            raise RuntimeError("Restore graph generation already running in this session")

        project_paths = list(projects) if projects is not None else list(solution.projects)
        self._cancel_event = cancel_event or asyncio.Event()
        self._set_state(RestoreState.CREATED)

        logger.info(f"Getting restore information for solution {solution.file_name}")

        try:
            with contextlib.ExitStack() as stack:
                manifest_path = stack.enter_context(
                    scoped_temp_file(MANIFEST_SUFFIX, self._temp_dir)
                )
                results_path = stack.enter_context(
                    scoped_temp_file(OUTPUT_SUFFIX, self._temp_dir)
                )

                properties = create_restore_properties(solution, configuration, results_path)
                invocation = self._resolver.resolve()

                manifest = RestoreManifest.create(
                    properties, project_paths, invocation.restore_targets_path
                )
                manifest.write(manifest_path)
                self._set_state(RestoreState.MANIFEST_WRITTEN)

                args = build_msbuild_arguments(
                    invocation.engine_path, manifest_path, self._settings
                )
                logger.info(f"Running: {invocation.command} {args}")

                self._set_state(RestoreState.PROCESS_RUNNING)
                await self._runner.run_checked(
                    invocation.command,
                    args.to_list(),
                    solution.base_directory,
                    output=output,
                    cancel_event=self._cancel_event,
                    timeout=self._settings.timeout,
                )

                graph = read_dependency_graph(results_path)

            self._set_state(RestoreState.SUCCEEDED)
            return graph

        except (RestoreCancelledError, asyncio.CancelledError):
            self._set_state(RestoreState.CANCELLED)
            raise

        except Exception:
            self._set_state(RestoreState.FAILED)
            raise

        finally:
            self._cancel_event = None

    async def run(
        self,
        solution: Solution,
        projects: Iterable[str] | None = None,
        configuration: SolutionConfiguration | None = None,
        *,
        output: OutputSink | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RestoreResult:
        """Like get_solution_restore_spec, but reports errors in the result."""
        project_paths = list(projects) if projects is not None else list(solution.projects)
        start_time = time.perf_counter()

        try:
            graph = await self.get_solution_restore_spec(
                solution,
                project_paths,
                configuration,
                output=output,
                cancel_event=cancel_event,
            )
            result = RestoreResult(
                success=True,
                state=self._state,
                solution=solution.file_name,
                projects=project_paths,
                graph=graph,
            )
        except RestoreGraphError as e:
            logger.warning(f"Restore graph failed: {e}")
            result = RestoreResult(
                success=False,
                state=self._state,
                solution=solution.file_name,
                projects=project_paths,
                error=e,
            )

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        self._last_result = result
        return result

    async def cancel(self) -> bool:
        """Cancel the running invocation.

        Returns:
            True if an invocation was running
        """
        if self._cancel_event is None:
            return False
        self._cancel_event.set()
        return True
