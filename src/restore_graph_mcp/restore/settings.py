"""Restore settings captured from the process environment.

The settings are read once into an immutable snapshot so concurrent
invocations never observe a change halfway through building arguments.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Opt in to MSBuild 15.5+ SkipNonexistentTargets behavior
USE_SKIP_NONEXISTENT_ENV = "NUGET_RESTORE_MSBUILD_USESKIPNONEXISTENT"
# Raw additional MSBuild arguments, appended verbatim
ADDITIONAL_ARGS_ENV = "NUGET_RESTORE_MSBUILD_ARGS"
VERBOSE_ENV = "RESTORE_GRAPH_VERBOSE"
TIMEOUT_ENV = "RESTORE_GRAPH_TIMEOUT"

DEFAULT_TIMEOUT: float = 300.0


def _is_true(value: str | None) -> bool:
    return value is not None and value.lower() == "true"


@dataclass(frozen=True)
class RestoreSettings:
    """Snapshot of settings that affect the MSBuild command line."""

    verbose_logging: bool = False
    use_skip_nonexistent_targets: bool = False
    additional_arguments: str = ""
    timeout: float | None = DEFAULT_TIMEOUT

    @classmethod
    def from_environment(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        verbose_logging: bool | None = None,
    ) -> RestoreSettings:
        """Create settings from environment variables.

        Args:
            environ: Environment mapping (defaults to os.environ)
            verbose_logging: Explicit verbose toggle, overrides the environment

        Returns:
            Settings snapshot
        """
        env = os.environ if environ is None else environ

        if verbose_logging is None:
            verbose_logging = _is_true(env.get(VERBOSE_ENV)) or env.get(VERBOSE_ENV) == "1"

        timeout: float | None = DEFAULT_TIMEOUT
        raw_timeout = env.get(TIMEOUT_ENV, "").strip()
        if raw_timeout:
            try:
                timeout = float(raw_timeout)
            except ValueError:
                logger.warning(f"Ignoring invalid {TIMEOUT_ENV}={raw_timeout!r}")
            else:
                if timeout <= 0:
                    timeout = None

        # Case-insensitive match against "True", any other value keeps the safe default
        return cls(
            verbose_logging=verbose_logging,
            use_skip_nonexistent_targets=_is_true(env.get(USE_SKIP_NONEXISTENT_ENV)),
            additional_arguments=env.get(ADDITIONAL_ARGS_ENV, "") or "",
            timeout=timeout,
        )
