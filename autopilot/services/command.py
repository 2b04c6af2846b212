"""Local command execution for handlers and detectors."""

import logging
import shlex
import subprocess
from dataclasses import dataclass

from autopilot.core.config import settings

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of a command run."""

    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False


class CommandService:
    """Runs commands with a bounded timeout.

    Callers must check the allow_command_execution capability first.
    """

    @staticmethod
    def run_command(
        command: str, timeout: int | None = None, cwd: str | None = None
    ) -> CommandResult:
        """Run a command without a shell.

        Thin wrapper around subprocess.run() that catches launch failures and
        timeouts and returns a result with exit_code, stdout, stderr.

        Args:
            command: Command line, split with shlex
            timeout: Timeout in seconds (None = use handler_timeout)
            cwd: Working directory (None = source_root)

        Returns:
            CommandResult (also for non-zero exits, timeouts and missing binaries)
        """
        if timeout is None:
            timeout = settings.handler_timeout
        args = shlex.split(command)

        logger.info(f"Running command: {command} (timeout: {timeout}s)")
        try:
            completed = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=cwd or settings.source_root,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            logger.warning(f"Command timed out after {timeout}s: {command}")
            return CommandResult(
                exit_code=-1,
                stdout=e.stdout if isinstance(e.stdout, str) else "",
                stderr=f"Timed out after {timeout}s",
                timed_out=True,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.error(f"Could not launch command {args[0]}: {e}")
            return CommandResult(exit_code=127, stdout="", stderr=str(e))

        return CommandResult(
            exit_code=completed.returncode,
            stdout=completed.stdout,
            stderr=completed.stderr,
        )
