"""Port-forward handle backed by a ``kubectl port-forward`` process."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ai_conformance.cluster.base import PortForward
from ai_conformance.errors import ConnectivityError

log = logging.getLogger(__name__)

READY_MARKER = "Forwarding from"


@dataclass(kw_only=True)
class KubectlPortForward(PortForward):
    """A running ``kubectl port-forward`` process."""

    process: asyncio.subprocess.Process = field(repr=False)
    local_port: int
    description: str
    _drain_task: asyncio.Task[None] | None = field(
        default=None, init=False, repr=False
    )

    @classmethod
    async def start(
        cls,
        argv: Sequence[str],
        local_port: int,
        description: str,
        ready_timeout: float,
    ) -> "KubectlPortForward":
        """Spawn the process and wait until kubectl reports the tunnel is up."""
        log.info("Starting port-forward: %s", description)
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        handle = cls(process=process, local_port=local_port, description=description)
        try:
            await asyncio.wait_for(handle._wait_ready(), timeout=ready_timeout)
        except BaseException:
            await handle.close()
            raise
        handle._drain_task = asyncio.create_task(handle._drain())
        return handle

    def _output(self) -> asyncio.StreamReader:
        if self.process.stdout is None:
            raise ConnectivityError(
                f"Port-forward {self.description} has no output pipe"
            )
        return self.process.stdout

    async def _wait_ready(self) -> None:
        stdout = self._output()
        output: list[str] = []
        while line := await stdout.readline():
            text = line.decode(errors="replace").rstrip()
            output.append(text)
            if READY_MARKER in text:
                log.info("  %s", text)
                return
        raise ConnectivityError(
            f"Port-forward {self.description} exited: {' '.join(output)}"
        )

    async def _drain(self) -> None:
        # kubectl blocks once its stdout pipe is full
        stdout = self._output()
        while line := await stdout.readline():
            text = line.decode(errors="replace").rstrip()
            log.debug("port-forward %s: %s", self.description, text)

    async def close(self) -> None:
        """Stop the port-forward process."""
        if self._drain_task is not None:
            self._drain_task.cancel()
            self._drain_task = None
        if self.process.returncode is not None:
            return
        log.info("Stopping port-forward: %s", self.description)
        try:
            self.process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(self.process.wait(), timeout=5)
        except TimeoutError:
            self.process.kill()
            await self.process.wait()
