"""MSBuild property bag for the restore graph target."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .state import RestoreConfigurationError

if TYPE_CHECKING:
    from ..solution import Solution, SolutionConfiguration

OUTPUT_PATH_PROPERTY = "RestoreGraphOutputPath"
FILTER_MODE_PROPERTY = "RestoreProjectFilterMode"
FILTER_MODE_EXCLUSION_LIST = "exclusionlist"


def create_restore_properties(
    solution: Solution,
    configuration: SolutionConfiguration | None,
    output_path: str,
) -> dict[str, str]:
    """Create the properties passed to GenerateRestoreGraphFile.

    Args:
        solution: Solution being restored
        configuration: Resolved configuration (defaults to the solution's active one)
        output_path: File MSBuild writes the dependency graph to

    Returns:
        Property name to value mapping, in manifest order

    Raises:
        RestoreConfigurationError: If output_path is empty
    """
    if not output_path:
        raise RestoreConfigurationError(f"{OUTPUT_PATH_PROPERTY} must not be empty")

    config = configuration if configuration is not None else solution.active_configuration

    properties = {
        OUTPUT_PATH_PROPERTY: str(output_path),
        FILTER_MODE_PROPERTY: FILTER_MODE_EXCLUSION_LIST,
    }
    if config.name:
        properties["Configuration"] = config.name
    if config.platform:
        properties["Platform"] = config.platform
    return properties
