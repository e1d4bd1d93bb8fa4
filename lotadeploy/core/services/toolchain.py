"""
Toolchain checks — required executables and diagnostic versions.
"""

from __future__ import annotations

import logging
import platform
import shutil
import subprocess
from typing import Callable

from lotadeploy.core.errors import MissingDependency

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ("cargo", "rustc")


def check_dependencies(
    tools: list[str] | tuple[str, ...] = REQUIRED_TOOLS,
    which: Callable[[str], str | None] = shutil.which,
) -> dict[str, str]:
    """Verify every required tool is on PATH.

    Returns:
        {tool: resolved_path}

    Raises:
        MissingDependency: On the first tool that is not found.
    """
    logger.info("Checking dependencies...")
    found: dict[str, str] = {}
    for tool in tools:
        path = which(tool)
        if path is None:
            logger.error("Required dependency not found: %s", tool)
            raise MissingDependency(f"Required dependency not found: {tool}. Please install {tool} and try again")
        found[tool] = path
        logger.debug("Found %s at %s", tool, path)
    return found


def tool_version(tool: str, runner: Callable[..., subprocess.CompletedProcess] = subprocess.run) -> str:
    """``<tool> --version`` first line, or "unknown"."""
    try:
        r = runner([tool, "--version"], capture_output=True, text=True, timeout=10)
    except (OSError, subprocess.TimeoutExpired):
        return "unknown"
    if r.returncode != 0 or not r.stdout.strip():
        return "unknown"
    return r.stdout.strip().splitlines()[0]


def host_summary() -> str:
    """One-line host description (the ``uname -a`` equivalent)."""
    u = platform.uname()
    return f"{u.system} {u.node} {u.release} {u.version} {u.machine}"
