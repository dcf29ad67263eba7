"""Ephemeral MSBuild manifest that drives the restore graph target.

Generated document shape (child order is required by NuGet.targets):

    <Project ToolsVersion="14.0" xmlns="http://schemas.microsoft.com/developer/msbuild/2003">
      <PropertyGroup>...</PropertyGroup>
      <ItemGroup>
        <RestoreGraphProjectInputItems Include="..." />
      </ItemGroup>
      <Import Project=".../NuGet.targets" />
    </Project>
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from .properties import OUTPUT_PATH_PROPERTY
from .state import RestoreConfigurationError

logger = logging.getLogger(__name__)

MSBUILD_NAMESPACE = "http://schemas.microsoft.com/developer/msbuild/2003"
TOOLS_VERSION = "14.0"
PROJECT_INPUT_ITEM = "RestoreGraphProjectInputItems"

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8" standalone="no"?>\n'

# MSBuild property names are XML element names
PROPERTY_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*$")

# Serialize the MSBuild namespace as the default xmlns
ET.register_namespace("", MSBUILD_NAMESPACE)


def _qualify(tag: str) -> str:
    return f"{{{MSBUILD_NAMESPACE}}}{tag}"


@dataclass(frozen=True)
class RestoreManifest:
    """Immutable restore manifest: properties, project inputs and the targets import."""

    properties: tuple[tuple[str, str], ...]
    projects: tuple[str, ...]
    restore_targets_path: str

    @classmethod
    def create(
        cls,
        properties: Mapping[str, str] | Iterable[tuple[str, str]],
        projects: Iterable[str],
        restore_targets_path: str,
    ) -> RestoreManifest:
        """Validate inputs and build a manifest.

        Properties with empty values are dropped, except the output path,
        which must be present and non-empty.

        Args:
            properties: Property bag (mapping or name/value pairs)
            projects: MSBuild project paths, order preserved
            restore_targets_path: Path to NuGet.targets

        Returns:
            Manifest ready to serialize

        Raises:
            RestoreConfigurationError: On a missing output path, duplicate or
                invalid property names, or an empty targets path
        """
        pairs = list(properties.items() if isinstance(properties, Mapping) else properties)

        seen: set[str] = set()
        kept: list[tuple[str, str]] = []
        for name, value in pairs:
            if not PROPERTY_NAME_PATTERN.match(name or ""):
                raise RestoreConfigurationError(f"Invalid property name: {name!r}")
            if name in seen:
                raise RestoreConfigurationError(f"Duplicate property: {name}")
            seen.add(name)
            if not value:
                if name == OUTPUT_PATH_PROPERTY:
                    raise RestoreConfigurationError(f"{OUTPUT_PATH_PROPERTY} must not be empty")
                logger.debug(f"Skipping empty property {name}")
                continue
            kept.append((name, str(value)))

        if OUTPUT_PATH_PROPERTY not in seen:
            raise RestoreConfigurationError(f"Missing required property {OUTPUT_PATH_PROPERTY}")
        if not restore_targets_path:
            raise RestoreConfigurationError("Restore targets path must not be empty")

        return cls(
            properties=tuple(kept),
            projects=tuple(str(p) for p in projects),
            restore_targets_path=str(restore_targets_path),
        )

    def to_element(self) -> ET.Element:
        """Build the element tree in one pass."""
        root = ET.Element(_qualify("Project"), {"ToolsVersion": TOOLS_VERSION})

        property_group = ET.SubElement(root, _qualify("PropertyGroup"))
        for name, value in self.properties:
            ET.SubElement(property_group, _qualify(name)).text = value

        item_group = ET.SubElement(root, _qualify("ItemGroup"))
        for project in self.projects:
            ET.SubElement(item_group, _qualify(PROJECT_INPUT_ITEM), {"Include": project})

        ET.SubElement(root, _qualify("Import"), {"Project": self.restore_targets_path})
        return root

    def to_bytes(self) -> bytes:
        """Serialize as UTF-8 XML with declaration."""
        root = self.to_element()
        ET.indent(root)
        body = ET.tostring(root, encoding="unicode")
        return (XML_DECLARATION + body + "\n").encode("utf-8")

    def write(self, path: str | Path) -> None:
        """Write the manifest to path, replacing any existing content."""
        Path(path).write_bytes(self.to_bytes())
        logger.debug(f"Wrote restore manifest with {len(self.projects)} projects to {path}")
