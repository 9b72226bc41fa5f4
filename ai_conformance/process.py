"""Async execution of external commands with output captured to the run log."""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from ai_conformance.errors import CommandError, WaitTimeoutError

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class CommandResult:
    """Outcome of an external command."""

    argv: Sequence[str]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        """Whether the command exited with status zero."""
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as a terminal would show it."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def check(self) -> "CommandResult":
        """Raise CommandError unless the command succeeded."""
        if not self.ok:
            raise CommandError(list(self.argv), self.returncode, self.output)
        return self


def log_output(text: str, level: int = logging.INFO) -> None:
    """Append command output to the log, indented by two spaces."""
    for line in text.rstrip("\n").splitlines():
        log.log(level, "  %s", line)


async def run_command(
    argv: Sequence[str],
    *,
    stdin: str | None = None,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
    echo: bool = True,
) -> CommandResult:
    """Run a command to completion and return its captured output.

    Args:
        argv: Program and arguments; never passed through a shell
        stdin: Text written to the process' standard input
        timeout: Seconds before the process is killed
        env: Full environment for the child, defaults to the current one
        echo: Whether to log the command line and its output

    Returns:
        The command result; a non-zero exit status is not an error here

    Raises:
        WaitTimeoutError: If the command did not finish within timeout
        FileNotFoundError: If the program does not exist

    """
    if echo:
        log.info("▶ Running: %s", " ".join(argv))

    stdin_mode = (
        asyncio.subprocess.PIPE if stdin is not None else asyncio.subprocess.DEVNULL
    )
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=stdin_mode,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )
    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(stdin.encode() if stdin is not None else None),
            timeout=timeout,
        )
    except TimeoutError:
        process.kill()
        await process.wait()
        raise WaitTimeoutError(
            f"Command {argv[0]!r} did not finish within {timeout} seconds"
        ) from None
    except asyncio.CancelledError:
        if process.returncode is None:
            process.kill()
            await process.wait()
        raise

    result = CommandResult(
        argv=tuple(argv),
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )
    if echo and result.output:
        log_output(result.output)
    return result
