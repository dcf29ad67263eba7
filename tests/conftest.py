"""Pytest fixtures for restore-graph-mcp tests."""

import asyncio
import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


class FakeRuntimeProvider:
    """Runtime provider with a fixed MSBuild layout."""

    def __init__(
        self,
        is_windows=False,
        bin_directory="/opt/mono/lib/mono/msbuild/15.0/bin",
        runtime_prefix="/opt/mono",
        existing_files=None,
    ):
        self.is_windows = is_windows
        self.bin_directory = bin_directory
        self.runtime_prefix = runtime_prefix
        self.existing_files = set(existing_files or [])
        self.requested_versions = []

    def get_msbuild_bin_directory(self, toolset_version):
        self.requested_versions.append(toolset_version)
        return self.bin_directory

    def get_runtime_prefix(self):
        return self.runtime_prefix

    def file_exists(self, path):
        return path in self.existing_files


@pytest.fixture
def fake_provider():
    """Non-Windows provider where MSBuild.dll exists."""
    return FakeRuntimeProvider(
        existing_files={os.path.join("/opt/mono/lib/mono/msbuild/15.0/bin", "MSBuild.dll")}
    )


@pytest.fixture
def make_process():
    """Factory for mocked asyncio subprocesses.

    The process exits immediately with exit_code unless block=True, in which
    case it only exits once terminate() or kill() is called.
    """

    def factory(exit_code=0, stdout_lines=(), stderr_lines=(), block=False):
        process = MagicMock()
        process.pid = None
        process.returncode = None if block else exit_code
        exited = asyncio.Event()

        def reader(lines):
            stream = MagicMock()
            stream.readline = AsyncMock(side_effect=[*lines, b""])
            return stream

        process.stdout = reader(stdout_lines)
        process.stderr = reader(stderr_lines)

        async def wait():
            if block:
                await exited.wait()
            return process.returncode

        def stop():
            process.returncode = -15
            exited.set()

        process.wait = wait
        process.terminate = MagicMock(side_effect=stop)
        process.kill = MagicMock(side_effect=stop)
        return process

    return factory


@pytest.fixture
def sample_graph_data():
    """Dependency graph JSON as written by GenerateRestoreGraphFile."""
    return {
        "format": 1,
        "restore": {"/src/App/App.csproj": {}},
        "projects": {
            "/src/App/App.csproj": {
                "version": "1.0.0",
                "restore": {
                    "projectUniqueName": "/src/App/App.csproj",
                    "projectName": "App",
                    "projectPath": "/src/App/App.csproj",
                    "outputPath": "/src/App/obj/",
                    "projectStyle": "PackageReference",
                    "frameworks": {
                        "net8.0": {
                            "projectReferences": {
                                "/src/Lib/Lib.csproj": {"projectPath": "/src/Lib/Lib.csproj"}
                            }
                        }
                    },
                },
                "frameworks": {
                    "net8.0": {
                        "dependencies": {
                            "Newtonsoft.Json": {"target": "Package", "version": "[13.0.3, )"},
                            "Serilog": {"target": "Package", "version": "[3.1.1, )"},
                        }
                    }
                },
            },
            "/src/Lib/Lib.csproj": {
                "version": "1.0.0",
                "restore": {
                    "projectUniqueName": "/src/Lib/Lib.csproj",
                    "projectName": "Lib",
                    "projectPath": "/src/Lib/Lib.csproj",
                    "projectStyle": "PackageReference",
                    "frameworks": {"net8.0": {"projectReferences": {}}},
                },
                "frameworks": {
                    "net8.0": {
                        "dependencies": {
                            "Microsoft.Extensions.Logging": {
                                "target": "Package",
                                "version": "[8.0.0, )",
                            }
                        }
                    }
                },
            },
        },
    }
