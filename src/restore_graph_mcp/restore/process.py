"""External MSBuild process execution.

Output is streamed line by line to a sink while the caller awaits the
exit. The wait resolves on process exit, on a cancellation request
(the process is terminated first) or on timeout.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence

from .state import (
    MSBuildExitError,
    MSBuildResolutionError,
    RestoreCancelledError,
    RestoreTimeoutError,
)

logger = logging.getLogger(__name__)
msbuild_logger = logging.getLogger(f"{__package__}.msbuild")

OutputSink = Callable[[str], None]

MAX_OUTPUT_LINE: int = 10_000  # characters per line
STREAM_LIMIT: int = 1024 * 1024  # asyncio StreamReader buffer
TERMINATE_GRACE_SECONDS: float = 5.0


def log_output(line: str) -> None:
    """Default sink: MSBuild output at DEBUG level."""
    msbuild_logger.debug(line)


class ProcessRunner:
    """Runs a command asynchronously with cancellation and timeout support."""

    def __init__(self, terminate_grace: float = TERMINATE_GRACE_SECONDS):
        self._terminate_grace = terminate_grace

    async def _pump(self, stream: asyncio.StreamReader | None, sink: OutputSink) -> None:
        if stream is None:
            return
        while True:
            line = await stream.readline()
            if not line:
                break
            decoded = line.decode("utf-8", errors="replace").rstrip("\r\n")
            if len(decoded) > MAX_OUTPUT_LINE:
                decoded = decoded[:MAX_OUTPUT_LINE] + "...[truncated]"
            try:
                sink(decoded)
            except Exception:
                logger.exception("Output sink error")

    async def _wait_for_exit(
        self,
        process: asyncio.subprocess.Process,
        readers: list[asyncio.Task[None]],
    ) -> int:
        await asyncio.gather(*readers)
        await process.wait()
        return process.returncode or 0

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Terminate the process and wait until it has exited."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self._terminate_grace)
        except asyncio.TimeoutError:
            logger.warning(f"Process did not exit within {self._terminate_grace}s, killing")
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

    async def run(
        self,
        command: str,
        args: Sequence[str],
        cwd: str | None = None,
        *,
        output: OutputSink | None = None,
        cancel_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> int:
        """Run command and return its exit code.

        Args:
            command: Executable to run
            args: Arguments (passed without a shell)
            cwd: Working directory
            output: Receives stdout and stderr lines as they are produced
            cancel_event: Set to request termination
            timeout: Seconds before the process is killed (None waits forever)

        Returns:
            Process exit code

        Raises:
            RestoreCancelledError: If cancel_event was set before exit
            MSBuildResolutionError: If the executable could not be started
            RestoreTimeoutError: If timeout was exceeded
            asyncio.CancelledError: If the awaiting task was cancelled
        """
        sink = output or log_output

        # Never use shell=True
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            raise MSBuildResolutionError(f"Failed to start {command}: {e}") from e
        logger.debug(f"Started process {getattr(process, 'pid', None)}: {command}")

        readers = [
            asyncio.create_task(self._pump(process.stdout, sink)),
            asyncio.create_task(self._pump(process.stderr, sink)),
        ]
        exit_task = asyncio.create_task(self._wait_for_exit(process, readers))
        cancel_task = (
            asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
        )
        waiters: set[asyncio.Future] = {exit_task}
        if cancel_task is not None:
            waiters.add(cancel_task)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if exit_task in done:
                return exit_task.result()

            await self._terminate(process)
            if cancel_task is not None and cancel_task in done:
                logger.info("Process terminated on cancellation request")
                raise RestoreCancelledError("Restore graph generation cancelled")

            logger.warning(f"Process timeout after {timeout}s")
            raise RestoreTimeoutError(timeout or 0.0)

        except asyncio.CancelledError:
            await asyncio.shield(self._terminate(process))
            raise

        finally:
            pending = [t for t in (exit_task, cancel_task, *readers) if t is not None and not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

    async def run_checked(
        self,
        command: str,
        args: Sequence[str],
        cwd: str | None = None,
        **kwargs,
    ) -> None:
        """Run command, raising MSBuildExitError on a non-zero exit code."""
        exit_code = await self.run(command, args, cwd, **kwargs)
        if exit_code != 0:
            raise MSBuildExitError(exit_code)
