"""Restore graph state management, errors and result types.

State machine for one restore graph invocation:
CREATED → MANIFEST_WRITTEN → PROCESS_RUNNING → SUCCEEDED | FAILED | CANCELLED
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .graph import DependencyGraphSpec


class RestoreState(str, Enum):
    """Restore graph invocation states."""

    CREATED = "created"
    MANIFEST_WRITTEN = "manifest_written"
    PROCESS_RUNNING = "process_running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RestoreState.SUCCEEDED, RestoreState.FAILED, RestoreState.CANCELLED)


class RestoreGraphError(Exception):
    """Base error for restore graph generation."""

    kind = "error"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {"error": str(self), "kind": self.kind}


class RestoreConfigurationError(RestoreGraphError, ValueError):
    """Invalid or missing restore input detected before MSBuild was started."""

    kind = "configuration"


class MSBuildResolutionError(RestoreGraphError):
    """MSBuild or the runtime needed to host it could not be located."""

    kind = "resolution"


class MSBuildExitError(RestoreGraphError):
    """MSBuild exited with a non-zero exit code."""

    kind = "exit"

    def __init__(self, exit_code: int):
        super().__init__(f"MSBuild exited with code {exit_code}")
        self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["exitCode"] = self.exit_code
        return result


class RestoreCancelledError(RestoreGraphError):
    """Restore graph generation was cancelled by the caller."""

    kind = "cancelled"


class RestoreTimeoutError(RestoreGraphError):
    """MSBuild did not finish within the configured timeout."""

    kind = "timeout"

    def __init__(self, timeout: float):
        super().__init__(f"MSBuild timeout after {timeout}s")
        self.timeout = timeout


class RestoreGraphParseError(RestoreGraphError):
    """The restore graph output file is missing or malformed."""

    kind = "parse"


@dataclass
class RestoreResult:
    """Result of a restore graph invocation."""

    success: bool
    state: RestoreState
    solution: str
    projects: list[str] = field(default_factory=list)
    graph: DependencyGraphSpec | None = None
    error: RestoreGraphError | None = None
    duration_ms: float = 0.0

    @property
    def exit_code(self) -> int | None:
        if isinstance(self.error, MSBuildExitError):
            return self.error.exit_code
        return 0 if self.success else None

    @property
    def cancelled(self) -> bool:
        return self.state == RestoreState.CANCELLED

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "success": self.success,
            "state": self.state.value,
            "solution": self.solution,
            "projects": list(self.projects),
            "durationMs": round(self.duration_ms, 2),
        }
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        if self.graph is not None:
            result["graph"] = self.graph.to_dict()
        if self.error is not None:
            result.update(self.error.to_dict())
        return result

    def to_summary(self) -> str:
        """Generate human-readable summary."""
        status = "[OK] Restore graph generated" if self.success else "[FAILED] Restore graph failed"
        if self.cancelled:
            status = "[CANCELLED] Restore graph cancelled"

        parts = [
            status,
            f"  Solution: {self.solution}",
            f"  Projects: {len(self.projects)}",
            f"  Duration: {self.duration_ms:.0f}ms",
        ]
        if self.graph is not None:
            parts.append(f"  Restore entries: {len(self.graph.restore)}")
        if self.error is not None and not self.cancelled:
            parts.append(f"  Error: {self.error}")
        return "\n".join(parts)
