"""
Diagnostic command runner - narrow seam around OS tools (ip, ifconfig, ping, arduino-cli)
"""

import logging
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

COMMAND_NOT_FOUND = 127
COMMAND_TIMED_OUT = 124


@dataclass(frozen=True)
class CommandResult:
    """Outcome of an external command"""
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Runs external commands with a bounded timeout.

    A missing executable or an expired timeout is reported through the
    return code instead of an exception, so callers can treat diagnostics
    as best-effort.
    """

    def run(self, args: Sequence[str], timeout: Optional[float] = None, cwd: Optional[str] = None) -> CommandResult:
        logger.debug(f"Running command: {' '.join(args)}")
        try:
            completed = subprocess.run(
                list(args),
                capture_output=True,
                text=True,
                timeout=timeout,
                cwd=cwd,
            )
        except FileNotFoundError:
            logger.debug(f"Command not found: {args[0]}")
            return CommandResult(COMMAND_NOT_FOUND, "", f"{args[0]}: command not found")
        except subprocess.TimeoutExpired as e:
            logger.warning(f"Command timed out after {timeout}s: {' '.join(args)}")
            stdout = e.stdout.decode(errors='replace') if isinstance(e.stdout, bytes) else (e.stdout or "")
            return CommandResult(COMMAND_TIMED_OUT, stdout, "timed out")

        return CommandResult(completed.returncode, completed.stdout or "", completed.stderr or "")
