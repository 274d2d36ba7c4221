"""Executable discovery and invocation for external transforms.

Functions:
    find_executable: Locate an executable in PATH or node_modules.
    run_command: Run an external command on the event loop and capture output.
"""

from __future__ import annotations

import asyncio
import os
import shutil
from collections.abc import Mapping
from pathlib import Path

from .errors import CommandError
from .logging import get_logger

logger = get_logger("exec")


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable in PATH or local node_modules.

    Searches for an executable first in the system PATH, then in the
    project's local node_modules/.bin directory if a project root is provided.

    Args:
        name: Name of the executable to find (e.g., 'sass', 'webpack').
        project_root: Optional project root directory to search for
            local node_modules installations.

    Returns:
        Full path to the executable if found, None otherwise.

    Examples:
        >>> find_executable('node')  # System PATH lookup
        '/usr/local/bin/node'

        >>> find_executable('sass', Path('/my/project'))  # With local lookup
        '/my/project/node_modules/.bin/sass'
    """
    found = shutil.which(name)
    if found:
        return found

    if project_root is not None:
        local = project_root / "node_modules" / ".bin" / name
        if local.exists():
            return str(local)

    return None


async def run_command(
    cmd: list[str],
    *,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """Run ``cmd`` without blocking the event loop.

    Args:
        cmd: Program and arguments.
        cwd: Working directory.
        env: Extra environment variables layered over the current environment.

    Returns:
        Captured standard output.

    Raises:
        CommandError: The command exited with a non-zero status.
    """
    logger.debug("Running %s", " ".join(cmd))
    full_env = None
    if env:
        full_env = {**os.environ, **env}
    process = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd else None,
        env=full_env,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        raise CommandError(cmd, process.returncode, stderr.decode("utf-8", "replace"))
    return stdout.decode("utf-8", "replace")
