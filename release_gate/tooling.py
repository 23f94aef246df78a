"""
Subprocess and file helpers shared by the packaging and publishing stages.
"""

import hashlib
import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from release_gate.errors import ConfigurationError

logger = logging.getLogger(__name__)


def run_command(
    cmd: List[str],
    cwd: Optional[Path] = None,
    env: Optional[Dict[str, str]] = None,
    hide_env: Optional[Iterable[str]] = None,
) -> subprocess.CompletedProcess:
    """
    Run an external tool and return its completed process.

    A non-zero exit status is returned, not raised; callers classify the
    failure from the return code and stderr.

    Args:
        cmd: Command and arguments
        cwd: Working directory
        env: Extra environment variables layered over ``os.environ`` for this
            process only
        hide_env: Variable names removed from the inherited environment, so
            secrets belonging to other stages never reach the child process

    Raises:
        ConfigurationError: If the executable is not installed
    """
    cmd_str = " ".join(str(c) for c in cmd)
    logger.debug(f"Running: {cmd_str}")

    hidden = [name for name in (hide_env or ()) if name]
    process_env = None
    if env or hidden:
        process_env = os.environ.copy()
        for name in hidden:
            process_env.pop(name, None)
        process_env.update(env or {})

    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            env=process_env,
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError as e:
        raise ConfigurationError(f"Executable not found for command '{cmd_str}': {e}")

    if result.returncode != 0:
        logger.error(f"Command failed: {cmd_str} (exit code {result.returncode})")
        if result.stderr:
            logger.error(f"STDERR: {result.stderr.strip()[-2000:]}")
    elif result.stdout:
        logger.debug(f"STDOUT: {result.stdout[:500]}")

    return result


def calculate_sha256(file_path: Path) -> str:
    """Calculate SHA256 checksum of a file"""
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for byte_block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()
