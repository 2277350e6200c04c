"""
External command execution.

Every tool k8s-libvirt drives (terraform, ansible, ansible-playbook, ssh,
ssh-keygen) is invoked through run_command so that logging, missing-tool
detection and failure reporting behave the same everywhere.
"""

import logging
import os
import shutil
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from k8s_libvirt.exceptions import CommandFailedError, MissingToolError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a finished command."""

    command: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


# Signature shared by run_command and the fakes used in tests
CommandRunner = Callable[..., CommandResult]


def is_tool_available(tool: str) -> bool:
    """Check whether an executable is on PATH."""
    return shutil.which(tool) is not None


def require_tool(tool: str) -> None:
    """Raise MissingToolError unless the executable is on PATH."""
    if not is_tool_available(tool):
        raise MissingToolError(tool)


def run_command(
    cmd: Sequence[str],
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    timeout: float | None = None,
    check: bool = False,
    stream: bool = False,
) -> CommandResult:
    """
    Run an external command and collect its output.

    Args:
        cmd: Command and arguments
        cwd: Working directory
        env: Extra environment variables layered over os.environ
        timeout: Seconds before the command is killed
        check: Raise CommandFailedError on a non-zero exit status
        stream: Let output go straight to the terminal instead of capturing it

    Returns:
        CommandResult (stdout/stderr are empty when streaming)

    Raises:
        MissingToolError: If the executable cannot be found
        CommandFailedError: If check is set and the command fails
    """
    command = [str(part) for part in cmd]
    full_env = None
    if env:
        full_env = {**os.environ, **env}

    logger.debug(f"Running: {' '.join(command)} (cwd={cwd or os.getcwd()})")

    try:
        completed = subprocess.run(
            command,
            cwd=str(cwd) if cwd else None,
            env=full_env,
            capture_output=not stream,
            text=True,
            timeout=timeout,
        )
    except FileNotFoundError:
        raise MissingToolError(command[0])
    except subprocess.TimeoutExpired as e:
        # Report timeouts like any other failed command; 124 mirrors coreutils timeout(1)
        stderr = e.stderr.decode() if isinstance(e.stderr, bytes) else (e.stderr or "")
        logger.warning(f"Command timed out after {timeout}s: {' '.join(command)}")
        result = CommandResult(command, 124, "", stderr or f"timed out after {timeout}s")
        if check:
            raise CommandFailedError(command, result.returncode, result.stderr)
        return result

    result = CommandResult(
        command=command,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )
    logger.debug(f"Exit code {result.returncode}: {command[0]}")

    if check and not result.ok:
        raise CommandFailedError(command, result.returncode, result.stderr)

    return result
