"""MSBuild location and host runtime resolution.

On Windows MSBuild runs directly. Elsewhere it runs under the Mono
runtime, so the command is the runtime interpreter and the MSBuild
assembly becomes its first argument.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from .state import MSBuildResolutionError

logger = logging.getLogger(__name__)

MSBUILD_TOOLSET_VERSION = "15.0"
MSBUILD_ASSEMBLY = "MSBuild.dll"
MSBUILD_EXECUTABLE = "MSBuild.exe"
RESTORE_TARGETS_FILE = "NuGet.targets"
RUNTIME_INTERPRETER = "mono64"

MSBUILD_PATH_ENV = "RESTORE_GRAPH_MSBUILD_PATH"
MSBUILD_EXE_PATH_ENV = "MSBUILD_EXE_PATH"
MONO_PREFIX_ENV = "MONO_PREFIX"


class RuntimeProvider(Protocol):
    """Host services used to locate MSBuild and its runtime."""

    @property
    def is_windows(self) -> bool: ...

    def get_msbuild_bin_directory(self, toolset_version: str) -> str | None: ...

    def get_runtime_prefix(self) -> str | None: ...

    def file_exists(self, path: str) -> bool: ...


class HostRuntimeProvider:
    """Runtime provider backed by the environment and PATH lookup."""

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = os.environ if environ is None else environ

    @property
    def is_windows(self) -> bool:
        return os.name == "nt"

    def get_runtime_prefix(self) -> str | None:
        prefix = self._environ.get(MONO_PREFIX_ENV)
        if prefix:
            return prefix

        mono = shutil.which("mono")
        if mono:
            # <prefix>/bin/mono
            return os.path.dirname(os.path.dirname(os.path.realpath(mono)))
        return None

    def get_msbuild_bin_directory(self, toolset_version: str) -> str | None:
        explicit = self._environ.get(MSBUILD_PATH_ENV)
        if explicit:
            return explicit

        exe_path = self._environ.get(MSBUILD_EXE_PATH_ENV)
        if exe_path:
            return os.path.dirname(exe_path)

        if not self.is_windows:
            prefix = self.get_runtime_prefix()
            if prefix:
                for version in (toolset_version, "Current"):
                    candidate = os.path.join(prefix, "lib", "mono", "msbuild", version, "bin")
                    if os.path.isdir(candidate):
                        return candidate

        msbuild = shutil.which("MSBuild.exe" if self.is_windows else "msbuild")
        if msbuild:
            return os.path.dirname(os.path.realpath(msbuild))
        return None

    def file_exists(self, path: str) -> bool:
        return os.path.isfile(path)


@dataclass(frozen=True)
class MSBuildInvocation:
    """Resolved command for running MSBuild on this host."""

    command: str
    engine_path: str | None
    restore_targets_path: str


class PlatformResolver:
    """Resolve the MSBuild command appropriate to the host OS."""

    def __init__(self, provider: RuntimeProvider | None = None):
        self._provider = provider or HostRuntimeProvider()

    def get_msbuild_bin_path(self) -> str:
        """Path to MSBuild, preferring the managed assembly over the executable.

        Raises:
            MSBuildResolutionError: If no MSBuild installation is found
        """
        bin_directory = self._provider.get_msbuild_bin_directory(MSBUILD_TOOLSET_VERSION)
        if not bin_directory:
            raise MSBuildResolutionError(
                f"MSBuild {MSBUILD_TOOLSET_VERSION} not found. "
                f"Set {MSBUILD_PATH_ENV} to the MSBuild bin directory."
            )

        assembly = os.path.join(bin_directory, MSBUILD_ASSEMBLY)
        if self._provider.file_exists(assembly):
            return assembly
        return os.path.join(bin_directory, MSBUILD_EXECUTABLE)

    def get_runtime_path(self) -> str:
        """Path to the runtime interpreter that hosts MSBuild off Windows.

        Raises:
            MSBuildResolutionError: If the runtime prefix is unknown
        """
        prefix = self._provider.get_runtime_prefix()
        if not prefix:
            raise MSBuildResolutionError(
                f"Mono runtime not found. Set {MONO_PREFIX_ENV} to the Mono installation prefix."
            )
        return os.path.join(prefix, "bin", RUNTIME_INTERPRETER)

    def resolve(self) -> MSBuildInvocation:
        """Resolve command, engine argument and NuGet.targets location."""
        msbuild_bin_path = self.get_msbuild_bin_path()
        restore_targets_path = os.path.join(
            os.path.dirname(msbuild_bin_path), RESTORE_TARGETS_FILE
        )

        if self._provider.is_windows:
            invocation = MSBuildInvocation(
                command=msbuild_bin_path,
                engine_path=None,
                restore_targets_path=restore_targets_path,
            )
        else:
            invocation = MSBuildInvocation(
                command=self.get_runtime_path(),
                engine_path=msbuild_bin_path,
                restore_targets_path=restore_targets_path,
            )

        logger.debug(f"Resolved MSBuild invocation: {invocation}")
        return invocation
