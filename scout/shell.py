"""Thin wrapper around subprocess for invoking external tools."""

import logging
import shutil
import subprocess
from typing import List, Optional

from .errors import CommandError, ToolNotInstalledError

logger = logging.getLogger(__name__)


def run_command(args: List[str], cwd: Optional[str] = None) -> str:
    """
    Run an external command and return its stdout.

    No timeout is applied: a hung tool blocks the caller until it exits.

    Raises:
        ToolNotInstalledError: the executable could not be found
        CommandError: the command exited with a non-zero status
    """
    logger.debug(f"Running: {' '.join(args)} (cwd={cwd or '.'})")
    try:
        result = subprocess.run(
            args,
            cwd=cwd,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError:
        raise ToolNotInstalledError(args[0])

    if result.returncode != 0:
        raise CommandError(args, result.returncode, result.stderr or "")
    return result.stdout


def is_installed(tool: str) -> bool:
    return shutil.which(tool) is not None
