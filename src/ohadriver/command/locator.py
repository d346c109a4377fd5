"""
Binary location.

Finding the oha executable is platform specific and lives outside the
command builder; the builder only needs something callable that returns
a path or None.
"""

from __future__ import annotations

import os
import shutil
import sys
from pathlib import Path
from typing import Callable, Optional

BinaryLocator = Callable[[], Optional[str]]


def binary_name(platform: str | None = None) -> str:
    platform = platform or sys.platform
    return "oha.exe" if platform.startswith("win") else "oha"


def default_locator(binary: Path | str | None = None) -> BinaryLocator:
    """
    Create a locator.

    Args:
        binary: Explicit path or command name. When omitted, ./bin/oha
            is tried first, then PATH.

    Returns:
        Locator returning an absolute path, or None when nothing is found
    """
    def locate() -> str | None:
        if binary is not None:
            candidate = Path(binary)
            if candidate.is_file():
                return str(candidate.resolve())
            found = shutil.which(str(binary))
            return os.path.abspath(found) if found else None

        local = Path.cwd() / "bin" / binary_name()
        if local.is_file():
            return str(local.resolve())

        found = shutil.which(binary_name())
        return os.path.abspath(found) if found else None

    return locate


def fixed_locator(path: str | None) -> BinaryLocator:
    """Locator that always answers ``path`` (useful for tests and configs)."""
    return lambda: path
