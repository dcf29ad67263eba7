"""Temporary files removed when their scope exits."""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from collections.abc import Iterator

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def scoped_temp_file(suffix: str = "", directory: str | None = None) -> Iterator[str]:
    """Create an empty temp file and delete it on scope exit.

    Each call gets a unique name, so concurrent invocations never share a file.

    Args:
        suffix: File name suffix (e.g. ".output.dg")
        directory: Directory for the file (defaults to the system temp dir)

    Yields:
        Absolute path of the file
    """
    fd, path = tempfile.mkstemp(suffix=suffix, dir=directory)
    os.close(fd)
    try:
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove temp file {path}: {e}")
