"""MSBuild command line construction.

Arguments are kept twice: as the argv list handed to
asyncio.create_subprocess_exec (no shell involved) and as a quoted
command line used for logging and diagnostics.
"""

from __future__ import annotations

import os
import re
import shlex
from typing import TYPE_CHECKING

from .state import RestoreConfigurationError

if TYPE_CHECKING:
    from .settings import RestoreSettings

RESTORE_GRAPH_TARGET = "GenerateRestoreGraphFile"

# Whitespace or characters with meaning to sh or cmd.exe
NEEDS_QUOTING_PATTERN = re.compile(r"[\s\"'`$&|;<>()*?\[\]{}!#~^%=,\\]")


def quote_argument(value: str) -> str:
    """Quote a single argument for display as part of a command line.

    Values without whitespace or special characters are returned unchanged.
    """
    if value and not NEEDS_QUOTING_PATTERN.search(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def split_arguments(text: str) -> list[str]:
    """Split a user supplied argument string into argv entries.

    Double quotes group words and are removed. Off Windows, single quotes and
    backslash escapes follow POSIX shell rules; on Windows backslashes are
    kept literally.

    Raises:
        RestoreConfigurationError: If a quote is not closed
    """
    lexer = shlex.shlex(text, posix=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    if os.name == "nt":
        lexer.escape = ""
        lexer.quotes = '"'
    try:
        return list(lexer)
    except ValueError as e:
        raise RestoreConfigurationError(
            f"Invalid additional MSBuild arguments {text!r}: {e}"
        ) from e


class ArgumentBuilder:
    """Ordered process arguments with a quoted command line rendering."""

    def __init__(self) -> None:
        self._argv: list[str] = []
        self._rendered: list[str] = []

    def add(self, *args: str) -> None:
        """Add literal arguments that never need quoting."""
        for arg in args:
            self._argv.append(arg)
            self._rendered.append(arg)

    def add_quoted(self, value: str) -> None:
        """Add an argument, quoted in the rendered command line when needed."""
        self._argv.append(value)
        self._rendered.append(quote_argument(value))

    def add_property(self, name: str, value: str) -> None:
        """Add /p:name=value.

        Raises:
            ValueError: If value is empty
        """
        if not value:
            raise ValueError(f"Property {name} requires a value")
        self.add_property_if_has_value(name, value)

    def add_property_if_has_value(self, name: str, value: str | None) -> None:
        """Add /p:name=value unless value is empty."""
        if value:
            self._argv.append(f"/p:{name}={value}")
            self._rendered.append(f"/p:{name}={quote_argument(value)}")

    def add_raw(self, text: str) -> None:
        """Append user supplied arguments verbatim."""
        if not text:
            return
        self._argv.extend(split_arguments(text))
        self._rendered.append(text)

    def to_list(self) -> list[str]:
        """Arguments for process creation."""
        return list(self._argv)

    def __str__(self) -> str:
        return " ".join(self._rendered)

    def __len__(self) -> int:
        return len(self._argv)


def build_msbuild_arguments(
    engine_path: str | None,
    manifest_path: str,
    settings: RestoreSettings,
) -> ArgumentBuilder:
    """Build the argument list for the restore graph MSBuild run.

    Args:
        engine_path: MSBuild assembly when hosted by a runtime interpreter, else None
        manifest_path: Generated restore manifest
        settings: Verbosity and environment overrides snapshot

    Returns:
        Ordered arguments
    """
    args = ArgumentBuilder()

    if engine_path:
        args.add_quoted(engine_path)

    args.add_quoted(manifest_path)
    args.add(f"/t:{RESTORE_GRAPH_TARGET}", "/nologo", "/nr:false")

    if settings.verbose_logging:
        args.add("/v:diagnostic")
    else:
        args.add("/v:q")

    # Older MSBuild without SkipNonexistentTargets does not continue after
    # errors when BuildInParallel is combined with ContinueOnError.
    if not settings.use_skip_nonexistent_targets:
        args.add_property("RestoreBuildInParallel", "False")
        args.add_property("RestoreUseSkipNonexistentTargets", "False")

    args.add_raw(settings.additional_arguments)
    return args
