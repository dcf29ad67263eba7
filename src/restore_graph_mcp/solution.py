"""Minimal solution model consumed by restore graph generation.

Configuration selection is resolved by the caller; this module only
carries the resolved values and reads project entries from .sln files.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# MSBuild project file extensions that take part in restore
PROJECT_EXTENSIONS = frozenset({".csproj", ".fsproj", ".vbproj"})

# Format: Project("{TYPE-GUID}") = "Name", "relative\path.csproj", "{PROJECT-GUID}"
SLN_PROJECT_PATTERN = re.compile(
    r'^Project\("\{(?P<type>[^}]+)\}"\)\s*=\s*'
    r'"(?P<name>[^"]*)"\s*,\s*"(?P<path>[^"]*)"\s*,\s*"\{(?P<guid>[^}]+)\}"',
)


@dataclass(frozen=True)
class SolutionConfiguration:
    """Resolved solution configuration (e.g. Debug|Any CPU)."""

    name: str = ""
    platform: str = ""

    @classmethod
    def parse(cls, value: str) -> SolutionConfiguration:
        """Parse 'Name|Platform' notation."""
        name, _, platform = value.partition("|")
        return cls(name=name.strip(), platform=platform.strip())

    def __str__(self) -> str:
        if self.platform:
            return f"{self.name}|{self.platform}"
        return self.name


@dataclass
class Solution:
    """A solution file and the MSBuild projects it contains."""

    file_name: str
    projects: list[str] = field(default_factory=list)
    active_configuration: SolutionConfiguration = field(
        default_factory=lambda: SolutionConfiguration("Debug", "Any CPU")
    )

    @property
    def base_directory(self) -> str:
        """Directory containing the solution file."""
        return os.path.dirname(os.path.abspath(self.file_name))

    @classmethod
    def load(
        cls,
        path: str | Path,
        configuration: SolutionConfiguration | None = None,
    ) -> Solution:
        """Read a .sln file and collect its MSBuild project paths.

        Args:
            path: Path to the .sln file
            configuration: Active configuration (defaults to Debug|Any CPU)

        Returns:
            Solution with absolute project paths in file order

        Raises:
            FileNotFoundError: If the solution file does not exist
        """
        sln_path = Path(path).resolve()
        text = sln_path.read_text(encoding="utf-8-sig", errors="replace")

        projects: list[str] = []
        for line in text.splitlines():
            match = SLN_PROJECT_PATTERN.match(line.strip())
            if not match:
                continue
            relative = match.group("path").replace("\\", os.sep)
            if os.path.splitext(relative)[1].lower() not in PROJECT_EXTENSIONS:
                # Solution folders and non-MSBuild entries
                continue
            projects.append(os.path.normpath(os.path.join(sln_path.parent, relative)))

        logger.debug(f"Loaded {len(projects)} projects from {sln_path}")
        solution = cls(file_name=str(sln_path), projects=projects)
        if configuration is not None:
            solution.active_configuration = configuration
        return solution


def find_solution(start: str | Path | None = None) -> str | None:
    """Find the nearest .sln file walking up from start (default CWD).

    Returns:
        Absolute path to the first solution found, or None
    """
    current = Path(start).resolve() if start is not None else Path.cwd().resolve()

    def ancestors() -> Iterator[Path]:
        yield current
        yield from current.parents

    for directory in ancestors():
        solutions = sorted(directory.glob("*.sln"))
        if solutions:
            return str(solutions[0])
    return None
