"""Tests for restore graph session - end-to-end invocation."""

import asyncio
import json
import os
import xml.etree.ElementTree as ET
from unittest.mock import patch

import pytest

from restore_graph_mcp.restore.manifest import MSBUILD_NAMESPACE
from restore_graph_mcp.restore.platform import PlatformResolver
from restore_graph_mcp.restore.session import RestoreGraphSession
from restore_graph_mcp.restore.settings import RestoreSettings
from restore_graph_mcp.restore.state import (
    MSBuildExitError,
    MSBuildResolutionError,
    RestoreCancelledError,
    RestoreConfigurationError,
    RestoreGraphParseError,
    RestoreState,
)
from restore_graph_mcp.solution import Solution

NS = {"msb": MSBUILD_NAMESPACE}
PROJECTS = ["/src/p1/p1.csproj", "/src/p2/p2.csproj"]


@pytest.fixture
def solution(tmp_path):
    return Solution(file_name=str(tmp_path / "App.sln"), projects=list(PROJECTS))


@pytest.fixture
def temp_dir(tmp_path):
    path = tmp_path / "tmp"
    path.mkdir()
    return path


@pytest.fixture
def session(fake_provider, temp_dir):
    return RestoreGraphSession(
        settings=RestoreSettings(),
        resolver=PlatformResolver(fake_provider),
        temp_dir=str(temp_dir),
    )


def _output_path(manifest_path):
    root = ET.parse(manifest_path).getroot()
    return root.find("msb:PropertyGroup/msb:RestoreGraphOutputPath", NS).text


class TestRestoreGraphSessionSuccess:
    """Tests for a successful invocation."""

    @pytest.mark.asyncio
    async def test_returns_parsed_graph(self, session, solution, make_process, sample_graph_data):
        """Test MSBuild output is parsed into the graph."""
        captured = {}

        async def fake_msbuild(*args, **kwargs):
            captured["args"] = args
            captured["kwargs"] = kwargs
            manifest_path = args[2]
            captured["manifest"] = open(manifest_path, encoding="utf-8").read()
            with open(_output_path(manifest_path), "w", encoding="utf-8") as f:
                json.dump(sample_graph_data, f)
            return make_process(exit_code=0)

        with patch("asyncio.create_subprocess_exec", fake_msbuild):
            graph = await session.get_solution_restore_spec(solution)

        assert graph.restore == ["/src/App/App.csproj"]
        assert session.state == RestoreState.SUCCEEDED

    @pytest.mark.asyncio
    async def test_command_line_non_windows(self, session, solution, make_process, sample_graph_data):
        """Test interpreter, engine, manifest, flags and overrides in order."""
        captured = {}

        async def fake_msbuild(*args, **kwargs):
            captured["args"] = args
            captured["cwd"] = kwargs.get("cwd")
            with open(_output_path(args[2]), "w", encoding="utf-8") as f:
                json.dump(sample_graph_data, f)
            return make_process(exit_code=0)

        with patch("asyncio.create_subprocess_exec", fake_msbuild):
            await session.get_solution_restore_spec(solution)

        args = captured["args"]
        assert args[0] == os.path.join("/opt/mono", "bin", "mono64")
        assert args[1].endswith("MSBuild.dll")
        assert args[2].endswith(".nugetinputs.targets")
        assert list(args[3:]) == [
            "/t:GenerateRestoreGraphFile",
            "/nologo",
            "/nr:false",
            "/v:q",
            "/p:RestoreBuildInParallel=False",
            "/p:RestoreUseSkipNonexistentTargets=False",
        ]
        assert captured["cwd"] == solution.base_directory

    @pytest.mark.asyncio
    async def test_skip_nonexistent_override(self, fake_provider, temp_dir, solution, make_process, sample_graph_data):
        """Test the opt-in override removes the stability properties."""
        settings = RestoreSettings.from_environment(
            {"NUGET_RESTORE_MSBUILD_USESKIPNONEXISTENT": "True"}
        )
        session = RestoreGraphSession(
            settings=settings, resolver=PlatformResolver(fake_provider), temp_dir=str(temp_dir)
        )
        captured = {}

        async def fake_msbuild(*args, **kwargs):
            captured["args"] = args
            with open(_output_path(args[2]), "w", encoding="utf-8") as f:
                json.dump(sample_graph_data, f)
            return make_process(exit_code=0)

        with patch("asyncio.create_subprocess_exec", fake_msbuild):
            await session.get_solution_restore_spec(solution)

        assert "/p:RestoreBuildInParallel=False" not in captured["args"]
        assert "/p:RestoreUseSkipNonexistentTargets=False" not in captured["args"]

    @pytest.mark.asyncio
    async def test_manifest_contents(self, session, solution, make_process, sample_graph_data):
        """Test the manifest lists projects in order and imports NuGet.targets."""
        captured = {}

        async def fake_msbuild(*args, **kwargs):
            captured["root"] = ET.parse(args[2]).getroot()
            with open(_output_path(args[2]), "w", encoding="utf-8") as f:
                json.dump(sample_graph_data, f)
            return make_process(exit_code=0)

        with patch("asyncio.create_subprocess_exec", fake_msbuild):
            await session.get_solution_restore_spec(solution, list(reversed(PROJECTS)))

        root = captured["root"]
        items = root.findall("msb:ItemGroup/msb:RestoreGraphProjectInputItems", NS)
        assert [i.get("Include") for i in items] == list(reversed(PROJECTS))
        assert root.find("msb:Import", NS).get("Project").endswith("NuGet.targets")
        assert root.find("msb:PropertyGroup/msb:Configuration", NS).text == "Debug"
        assert root.find("msb:PropertyGroup/msb:Platform", NS).text == "Any CPU"

    @pytest.mark.asyncio
    async def test_temp_files_removed(self, session, solution, make_process, sample_graph_data, temp_dir):
        """Test manifest and output files are deleted after success."""
        seen = []

        async def fake_msbuild(*args, **kwargs):
            seen.append(args[2])
            seen.append(_output_path(args[2]))
            with open(seen[1], "w", encoding="utf-8") as f:
                json.dump(sample_graph_data, f)
            return make_process(exit_code=0)

        with patch("asyncio.create_subprocess_exec", fake_msbuild):
            await session.get_solution_restore_spec(solution)

        assert all(not os.path.exists(p) for p in seen)
        assert list(temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_state_transitions(self, session, solution, make_process, sample_graph_data):
        """Test listeners see every state in order."""

        async def fake_msbuild(*args, **kwargs):
            with open(_output_path(args[2]), "w", encoding="utf-8") as f:
                json.dump(sample_graph_data, f)
            return make_process(exit_code=0)

        states = []
        with patch("asyncio.create_subprocess_exec", fake_msbuild):
            await session.get_solution_restore_spec(solution)
            assert session.state == RestoreState.SUCCEEDED

            session.on_state_change(states.append)
            await session.get_solution_restore_spec(solution)

        assert states == [
            RestoreState.CREATED,
            RestoreState.MANIFEST_WRITTEN,
            RestoreState.PROCESS_RUNNING,
            RestoreState.SUCCEEDED,
        ]


class TestRestoreGraphSessionFailures:
    """Tests for failure paths."""

    @pytest.mark.asyncio
    async def test_non_zero_exit(self, session, solution, make_process, temp_dir):
        """Test exit code 1 raises and never reads the output file."""
        with patch("asyncio.create_subprocess_exec") as mock_exec, patch(
            "restore_graph_mcp.restore.session.read_dependency_graph"
        ) as mock_read:
            mock_exec.return_value = make_process(exit_code=1)

            with pytest.raises(MSBuildExitError) as exc_info:
                await session.get_solution_restore_spec(solution)

        assert exc_info.value.exit_code == 1
        mock_read.assert_not_called()
        assert session.state == RestoreState.FAILED
        assert list(temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_resolution_error_cleans_up(self, fake_provider, temp_dir, solution):
        """Test temp files are removed when MSBuild cannot be found."""
        fake_provider.bin_directory = None
        session = RestoreGraphSession(
            settings=RestoreSettings(),
            resolver=PlatformResolver(fake_provider),
            temp_dir=str(temp_dir),
        )

        with patch("asyncio.create_subprocess_exec") as mock_exec:
            with pytest.raises(MSBuildResolutionError):
                await session.get_solution_restore_spec(solution)

        mock_exec.assert_not_called()
        assert list(temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_configuration_error_spawns_nothing(self, session, solution, temp_dir):
        """Test a required property failure happens before MSBuild starts."""
        with patch("asyncio.create_subprocess_exec") as mock_exec, patch(
            "restore_graph_mcp.restore.session.scoped_temp_file"
        ) as mock_temp:
            mock_temp.return_value.__enter__.return_value = ""

            with pytest.raises(RestoreConfigurationError):
                await session.get_solution_restore_spec(solution)

        mock_exec.assert_not_called()
        assert session.state == RestoreState.FAILED

    @pytest.mark.asyncio
    async def test_missing_output_is_parse_error(self, session, solution, make_process):
        """Test exit code 0 with no graph written is a parse error."""
        with patch("asyncio.create_subprocess_exec") as mock_exec:
            mock_exec.return_value = make_process(exit_code=0)

            with pytest.raises(RestoreGraphParseError):
                await session.get_solution_restore_spec(solution)

        assert session.state == RestoreState.FAILED

    @pytest.mark.asyncio
    async def test_cancel(self, session, solution, make_process, temp_dir):
        """Test cancel terminates MSBuild and removes temp files."""
        process = make_process(block=True)

        with patch("asyncio.create_subprocess_exec") as mock_exec:
            mock_exec.return_value = process
            task = asyncio.create_task(session.get_solution_restore_spec(solution))
            await asyncio.sleep(0.05)

            assert session.is_running
            assert await session.cancel() is True

            with pytest.raises(RestoreCancelledError):
                await task

        process.terminate.assert_called_once()
        assert session.state == RestoreState.CANCELLED
        assert not session.is_running
        assert list(temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_cancel_when_idle(self, session):
        assert await session.cancel() is False


class TestRestoreGraphSessionRun:
    """Tests for the non-raising run() wrapper."""

    @pytest.mark.asyncio
    async def test_run_reports_exit_code(self, session, solution, make_process):
        with patch("asyncio.create_subprocess_exec") as mock_exec:
            mock_exec.return_value = make_process(exit_code=1)
            result = await session.run(solution)

        assert result.success is False
        assert result.graph is None
        assert result.exit_code == 1
        assert result.state == RestoreState.FAILED
        assert session.last_result is result
        assert result.to_dict()["kind"] == "exit"

    @pytest.mark.asyncio
    async def test_run_success(self, session, solution, make_process, sample_graph_data):
        async def fake_msbuild(*args, **kwargs):
            with open(_output_path(args[2]), "w", encoding="utf-8") as f:
                json.dump(sample_graph_data, f)
            return make_process(exit_code=0)

        with patch("asyncio.create_subprocess_exec", fake_msbuild):
            result = await session.run(solution)

        assert result.success is True
        assert result.projects == PROJECTS
        assert result.to_dict()["graph"]["restore"] == ["/src/App/App.csproj"]
        assert "[OK]" in result.to_summary()

    @pytest.mark.asyncio
    async def test_run_missing_runtime_interpreter(self, fake_provider, temp_dir, solution, tmp_path):
        """Test a runtime prefix without an interpreter reports a resolution failure."""
        fake_provider.runtime_prefix = str(tmp_path / "nomono")
        session = RestoreGraphSession(
            settings=RestoreSettings(),
            resolver=PlatformResolver(fake_provider),
            temp_dir=str(temp_dir),
        )

        result = await session.run(solution)

        assert result.success is False
        assert result.state == RestoreState.FAILED
        assert result.to_dict()["kind"] == "resolution"
        assert list(temp_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_run_unbalanced_additional_arguments(self, fake_provider, temp_dir, solution):
        """Test malformed NUGET_RESTORE_MSBUILD_ARGS fails before MSBuild starts."""
        settings = RestoreSettings.from_environment({"NUGET_RESTORE_MSBUILD_ARGS": '/p:Foo="a b'})
        session = RestoreGraphSession(
            settings=settings,
            resolver=PlatformResolver(fake_provider),
            temp_dir=str(temp_dir),
        )

        with patch("asyncio.create_subprocess_exec") as mock_exec:
            result = await session.run(solution)

        mock_exec.assert_not_called()
        assert result.success is False
        assert result.to_dict()["kind"] == "configuration"
        assert list(temp_dir.iterdir()) == []


class TestRestoreGraphSessionConcurrency:
    """Tests for concurrent invocations."""

    @pytest.mark.asyncio
    async def test_concurrent_sessions_use_separate_files(
        self, fake_provider, temp_dir, solution, make_process, sample_graph_data
    ):
        """Test concurrent invocations never share temp files."""
        manifests = []

        async def fake_msbuild(*args, **kwargs):
            manifests.append(args[2])
            await asyncio.sleep(0.01)
            with open(_output_path(args[2]), "w", encoding="utf-8") as f:
                json.dump(sample_graph_data, f)
            return make_process(exit_code=0)

        sessions = [
            RestoreGraphSession(
                settings=RestoreSettings(),
                resolver=PlatformResolver(fake_provider),
                temp_dir=str(temp_dir),
            )
            for _ in range(3)
        ]

        with patch("asyncio.create_subprocess_exec", fake_msbuild):
            graphs = await asyncio.gather(
                *(s.get_solution_restore_spec(solution) for s in sessions)
            )

        assert len(set(manifests)) == 3
        assert all(g.restore == ["/src/App/App.csproj"] for g in graphs)
        assert list(temp_dir.iterdir()) == []
