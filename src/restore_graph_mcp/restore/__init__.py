"""Restore graph generation for .NET solutions.

Drives MSBuild's GenerateRestoreGraphFile target:
- Property bag and ephemeral manifest generation
- MSBuild/Mono resolution per host OS
- Quoted command line with environment overrides
- Async process execution with cancellation and timeout
- Dependency graph parsing
"""

from .arguments import ArgumentBuilder, build_msbuild_arguments, quote_argument
from .graph import DependencyGraphSpec, PackageDependency, PackageSpec, read_dependency_graph
from .manifest import RestoreManifest
from .platform import HostRuntimeProvider, MSBuildInvocation, PlatformResolver, RuntimeProvider
from .process import ProcessRunner
from .properties import create_restore_properties
from .session import RestoreGraphSession
from .settings import RestoreSettings
from .state import (
    MSBuildExitError,
    MSBuildResolutionError,
    RestoreCancelledError,
    RestoreConfigurationError,
    RestoreGraphError,
    RestoreGraphParseError,
    RestoreResult,
    RestoreState,
    RestoreTimeoutError,
)
from .tempfiles import scoped_temp_file

__all__ = [
    "ArgumentBuilder",
    "build_msbuild_arguments",
    "quote_argument",
    "DependencyGraphSpec",
    "PackageDependency",
    "PackageSpec",
    "read_dependency_graph",
    "RestoreManifest",
    "HostRuntimeProvider",
    "MSBuildInvocation",
    "PlatformResolver",
    "RuntimeProvider",
    "ProcessRunner",
    "create_restore_properties",
    "RestoreGraphSession",
    "RestoreSettings",
    "RestoreState",
    "RestoreResult",
    "RestoreGraphError",
    "RestoreConfigurationError",
    "MSBuildResolutionError",
    "MSBuildExitError",
    "RestoreCancelledError",
    "RestoreTimeoutError",
    "RestoreGraphParseError",
    "scoped_temp_file",
]
