"""Dependency graph spec produced by MSBuild's GenerateRestoreGraphFile target.

The output file (.dg) is JSON:

    {
      "format": 1,
      "restore": {"<project unique name>": {}},
      "projects": {
        "<project unique name>": {
          "version": "1.0.0",
          "restore": {
            "projectName": "...", "projectPath": "...", "projectStyle": "...",
            "frameworks": {"<tfm>": {"projectReferences": {"<path>": {...}}}}
          },
          "frameworks": {"<tfm>": {"dependencies": {"<id>": {"version": "..."}}}}
        }
      }
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .state import RestoreGraphParseError

logger = logging.getLogger(__name__)


def _as_dict(value: Any, context: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise RestoreGraphParseError(f"Expected object for {context}, got {type(value).__name__}")
    return value


@dataclass
class PackageDependency:
    """A package reference declared by a project."""

    id: str
    version_range: str | None = None
    include_assets: str | None = None
    private_assets: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"id": self.id}
        if self.version_range:
            result["version"] = self.version_range
        if self.include_assets:
            result["include"] = self.include_assets
        if self.private_assets:
            result["suppressParent"] = self.private_assets
        return result


@dataclass
class PackageSpec:
    """Restore information for one project."""

    unique_name: str
    name: str
    path: str
    version: str = ""
    project_style: str = ""
    output_path: str = ""
    dependencies: dict[str, list[PackageDependency]] = field(default_factory=dict)
    project_references: dict[str, list[str]] = field(default_factory=dict)

    @property
    def target_frameworks(self) -> list[str]:
        frameworks = list(self.dependencies)
        for framework in self.project_references:
            if framework not in frameworks:
                frameworks.append(framework)
        return frameworks

    def package_dependencies(self, framework: str | None = None) -> list[str]:
        """Package ids this project restores, for one framework or all of them."""
        ids: dict[str, None] = {}
        for tfm, deps in self.dependencies.items():
            if framework is not None and tfm.lower() != framework.lower():
                continue
            for dep in deps:
                ids.setdefault(dep.id, None)
        return list(ids)

    def referenced_projects(self) -> list[str]:
        """Unique names of referenced projects across all frameworks."""
        refs: dict[str, None] = {}
        for paths in self.project_references.values():
            for path in paths:
                refs.setdefault(path, None)
        return list(refs)

    @classmethod
    def from_json(cls, unique_name: str, data: dict[str, Any]) -> PackageSpec:
        data = _as_dict(data, f"project {unique_name}")
        restore = _as_dict(data.get("restore"), f"{unique_name}.restore")

        # Project wide dependencies apply to every framework
        common = cls._read_dependencies(_as_dict(data.get("dependencies"), f"{unique_name}.dependencies"))

        dependencies: dict[str, list[PackageDependency]] = {}
        frameworks = _as_dict(data.get("frameworks"), f"{unique_name}.frameworks")
        for tfm, framework in frameworks.items():
            framework = _as_dict(framework, f"{unique_name}.frameworks.{tfm}")
            deps = cls._read_dependencies(
                _as_dict(framework.get("dependencies"), f"{unique_name}.frameworks.{tfm}.dependencies")
            )
            dependencies[tfm] = common + deps
        if common and not dependencies:
            dependencies[""] = common

        project_references: dict[str, list[str]] = {}
        restore_frameworks = _as_dict(restore.get("frameworks"), f"{unique_name}.restore.frameworks")
        for tfm, framework in restore_frameworks.items():
            framework = _as_dict(framework, f"{unique_name}.restore.frameworks.{tfm}")
            refs = _as_dict(framework.get("projectReferences"), f"{unique_name}.restore.frameworks.{tfm}")
            project_references[tfm] = list(refs)

        path = restore.get("projectPath") or unique_name
        return cls(
            unique_name=restore.get("projectUniqueName") or unique_name,
            name=restore.get("projectName") or Path(path).stem,
            path=path,
            version=str(data.get("version", "")),
            project_style=restore.get("projectStyle", ""),
            output_path=restore.get("outputPath", ""),
            dependencies=dependencies,
            project_references=project_references,
        )

    @staticmethod
    def _read_dependencies(raw: dict[str, Any]) -> list[PackageDependency]:
        deps: list[PackageDependency] = []
        for package_id, value in raw.items():
            # Short form: "Id": "1.0.0"
            if isinstance(value, str):
                deps.append(PackageDependency(id=package_id, version_range=value))
                continue
            value = _as_dict(value, f"dependency {package_id}")
            if value.get("target", "Package") != "Package":
                continue
            deps.append(
                PackageDependency(
                    id=package_id,
                    version_range=value.get("version"),
                    include_assets=value.get("include"),
                    private_assets=value.get("suppressParent"),
                )
            )
        return deps

    def to_dict(self) -> dict[str, Any]:
        return {
            "uniqueName": self.unique_name,
            "name": self.name,
            "path": self.path,
            "version": self.version,
            "projectStyle": self.project_style,
            "frameworks": {
                tfm: {
                    "dependencies": [d.to_dict() for d in self.dependencies.get(tfm, [])],
                    "projectReferences": list(self.project_references.get(tfm, [])),
                }
                for tfm in self.target_frameworks
            },
        }


@dataclass
class DependencyGraphSpec:
    """Restore graph for a set of projects.

    Project lookups are case-insensitive, matching how NuGet compares
    project unique names.
    """

    format: int = 1
    restore: list[str] = field(default_factory=list)
    projects: dict[str, PackageSpec] = field(default_factory=dict)

    def _index(self) -> dict[str, PackageSpec]:
        return {name.lower(): spec for name, spec in self.projects.items()}

    def get_project_spec(self, unique_name: str) -> PackageSpec | None:
        return self._index().get(unique_name.lower())

    def get_parents(self, unique_name: str) -> list[str]:
        """Projects that reference unique_name, sorted by name."""
        target = unique_name.lower()
        parents = [
            spec.unique_name
            for spec in self.projects.values()
            if any(ref.lower() == target for ref in spec.referenced_projects())
        ]
        return sorted(parents, key=str.lower)

    def get_closure(self, unique_name: str) -> list[PackageSpec]:
        """The project followed by every project it references transitively.

        Missing references are skipped. The referenced projects are sorted
        by unique name.
        """
        index = self._index()
        root = index.get(unique_name.lower())
        if root is None:
            return []

        seen = {root.unique_name.lower()}
        closure: list[PackageSpec] = []
        stack = list(root.referenced_projects())
        while stack:
            name = stack.pop()
            key = name.lower()
            if key in seen:
                continue
            seen.add(key)
            spec = index.get(key)
            if spec is None:
                logger.debug(f"Project reference not in graph: {name}")
                continue
            closure.append(spec)
            stack.extend(spec.referenced_projects())

        closure.sort(key=lambda s: s.unique_name.lower())
        return [root, *closure]

    def sorted_projects(self) -> list[PackageSpec]:
        """All projects, references before the projects that depend on them."""
        index = self._index()
        ordered: list[PackageSpec] = []
        visited: set[str] = set()

        def visit(spec: PackageSpec, path: set[str]) -> None:
            key = spec.unique_name.lower()
            if key in visited or key in path:
                return
            path.add(key)
            for ref in sorted(spec.referenced_projects(), key=str.lower):
                child = index.get(ref.lower())
                if child is not None:
                    visit(child, path)
            path.discard(key)
            visited.add(key)
            ordered.append(spec)

        for spec in sorted(self.projects.values(), key=lambda s: s.unique_name.lower()):
            visit(spec, set())
        return ordered

    @classmethod
    def from_json(cls, data: Any) -> DependencyGraphSpec:
        data = _as_dict(data, "dependency graph")
        raw_format = data.get("format", 1)
        if not isinstance(raw_format, int):
            raise RestoreGraphParseError(f"Invalid format version: {raw_format!r}")

        projects = {
            name: PackageSpec.from_json(name, value)
            for name, value in _as_dict(data.get("projects"), "projects").items()
        }
        return cls(
            format=raw_format,
            restore=list(_as_dict(data.get("restore"), "restore")),
            projects=projects,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "format": self.format,
            "restore": list(self.restore),
            "projects": {name: spec.to_dict() for name, spec in self.projects.items()},
        }


def read_dependency_graph(path: str | Path) -> DependencyGraphSpec:
    """Load the dependency graph written by MSBuild.

    Raises:
        RestoreGraphParseError: If the file is missing, empty or malformed
    """
    try:
        text = Path(path).read_text(encoding="utf-8-sig")
    except OSError as e:
        raise RestoreGraphParseError(f"Cannot read restore graph output {path}: {e}") from e

    if not text.strip():
        raise RestoreGraphParseError(f"Restore graph output is empty: {path}")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise RestoreGraphParseError(f"Invalid restore graph JSON in {path}: {e}") from e

    graph = DependencyGraphSpec.from_json(data)
    logger.debug(f"Read restore graph with {len(graph.projects)} projects from {path}")
    return graph
