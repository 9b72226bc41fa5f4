"""Lifecycle of one conformance run: pre-flight, probe, verdict, cleanup."""

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from types import TracebackType
from typing import NoReturn, Self

from pydantic import BaseModel

from ai_conformance.cleanup import CleanupRegistry
from ai_conformance.cluster.base import ClusterClient, PortForward
from ai_conformance.errors import ConnectivityError, InvalidTransitionError
from ai_conformance.models.result import RunState
from ai_conformance.models.run import TestRun
from ai_conformance.results import ResultRecorder

log = logging.getLogger(__name__)

PACKAGE_LOGGER = "ai_conformance"
HEADER_RULE = "═" * 64
STEP_RULE = "━" * 60
TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGHUP)

type Probe = Callable[["TestLifecycle"], Awaitable[None]]


class HarnessConfig(BaseModel):
    """Timing knobs of the harness itself."""

    settle_seconds: float = 5
    namespace_delete_timeout: float = 120
    namespace_gone_timeout: float = 60
    namespace_poll_interval: float = 2
    command_timeout: float = 300


class RunTerminated(BaseException):
    """Raised by the terminal entry points to unwind the probe.

    A ``BaseException`` like ``SystemExit``: ``except Exception`` handlers in
    a probe, the retry branch of ``wait_until`` included, let it through.
    """

    def __init__(self, exit_code: int) -> None:
        super().__init__(f"Run terminated with exit code {exit_code}")
        self.exit_code = exit_code


@dataclass(kw_only=True)
class TestLifecycle:
    """Orchestrates one conformance run.

    Entering the lifecycle opens the log sink, writes the header and reclaims
    leftovers of an earlier run. Leaving it, however the probe ended, records
    the verdict, runs the cleanup registry exactly once and closes the sink.
    ``succeed``, ``fail`` and ``fatal`` never clean up inline; they raise
    ``RunTerminated`` and the exit handler does the rest.
    """

    __test__ = False

    run: TestRun
    cluster: ClusterClient
    config: HarnessConfig = field(default_factory=HarnessConfig)
    recorder: ResultRecorder = field(default_factory=ResultRecorder)
    registry: CleanupRegistry = field(init=False)
    state: RunState = field(default=RunState.INITIALIZED, init=False)
    exit_code: int | None = field(default=None, init=False)
    _sink: logging.FileHandler | None = field(default=None, init=False, repr=False)
    _previous_level: int = field(default=logging.NOTSET, init=False, repr=False)
    _signals: list[signal.Signals] = field(
        default_factory=list, init=False, repr=False
    )
    _interrupted: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.registry = CleanupRegistry(
            cluster=self.cluster,
            primary_namespace=self.run.namespace,
            namespace_delete_timeout=self.config.namespace_delete_timeout,
            namespace_gone_timeout=self.config.namespace_gone_timeout,
            namespace_poll_interval=self.config.namespace_poll_interval,
            command_timeout=self.config.command_timeout,
        )

    async def __aenter__(self) -> Self:
        self._install_signal_handlers()
        try:
            await self.start()
        except BaseException as e:
            if not await self.__aexit__(type(e), e, e.__traceback__):
                raise
            raise RunTerminated(self.exit_code or 1) from e
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        try:
            if exc is None:
                self._conclude()
            elif isinstance(exc, RunTerminated):
                pass
            else:
                self._record_crash(exc)
            await self._shielded_cleanup()
        finally:
            self._remove_signal_handlers()
            self._close_sink()
        task = asyncio.current_task()
        if isinstance(exc, asyncio.CancelledError) and task is not None:
            task.uncancel()
        return isinstance(
            exc,
            Exception | RunTerminated | asyncio.CancelledError | KeyboardInterrupt,
        )

    async def execute(self, probe: Probe) -> int:
        """Run a probe inside the lifecycle and return the exit code."""
        try:
            async with self:
                await probe(self)
        except RunTerminated:
            pass
        if self.exit_code is None:
            raise InvalidTransitionError(
                f"Run ended in state {self.state} without a verdict"
            )
        return self.exit_code

    async def start(self) -> None:
        """Open the log sink and reclaim leftovers, then enter ``running``."""
        if self.state is not RunState.INITIALIZED:
            raise InvalidTransitionError(f"Cannot start a run in state {self.state}")

        self._open_sink()
        self._write_header()
        await self.detect_and_reclaim_leftovers()
        self.state = RunState.RUNNING

    async def detect_and_reclaim_leftovers(self) -> bool:
        """Clean up namespaces left behind by an earlier, incomplete run.

        Returns:
            True when leftovers were found and reclaimed

        """
        self.step("Pre-Test Cleanup Check")

        leftovers = await self.registry.leftover_namespaces()
        for namespace in leftovers:
            self.warn(f"Found leftover namespace: {namespace}")

        if leftovers:
            self.info("Cleaning up leftover resources from previous test run...")
            await self.registry.execute_all()
            self.passed("Pre-test cleanup completed")
            self.info(
                f"Waiting {self.config.settle_seconds:g} seconds "
                "before starting test..."
            )
            await asyncio.sleep(self.config.settle_seconds)
        else:
            self.passed("No leftover resources found")

        self.state = RunState.PREFLIGHT_CHECKED
        return bool(leftovers)

    def succeed(self, summary: str = "All tests passed successfully") -> NoReturn:
        """Finish the run as passed with exit code 0."""
        self._transition(RunState.SUCCEEDED)
        self.step("Test Result")
        self.passed(summary)
        log.info("")
        log.info("🎉 Test completed successfully!")
        log.info("")
        raise RunTerminated(0)

    def fail(self, summary: str = "Test failed") -> NoReturn:
        """Finish the run as failed with exit code 1."""
        self._transition(RunState.FAILED)
        self.step("Test Result")
        self.failed_msg(summary)
        log.info("")
        log.error("❌ Test failed!")
        log.info("")
        raise RunTerminated(1)

    def fatal(self, message: str) -> NoReturn:
        """Abort the run on an unrecoverable precondition violation."""
        self._transition(RunState.FAILED, from_any=True)
        self.failed_msg(message)
        raise RunTerminated(1)

    def finish_from_results(
        self,
        success_summary: str = "All tests passed successfully",
        failure_summary: str = "Some tests failed",
    ) -> NoReturn:
        """Print the sub-check summary, then succeed or fail accordingly."""
        if not len(self.recorder):
            self.warn("No sub-check results were recorded")
        self.log_results()
        if self.recorder.all_passed():
            self.succeed(success_summary)
        failed = ", ".join(self.recorder.failed())
        self.fail(f"{failure_summary}: {failed}")

    async def check_cluster_access(self) -> None:
        """Verify cluster connectivity, aborting the run when unreachable."""
        self.step("Checking Kubernetes Access")
        try:
            await self.cluster.check_access()
        except ConnectivityError as e:
            self.fatal(str(e))
        self.passed("Connected to Kubernetes cluster")

    async def apply_source(
        self, source: str, *, register_cleanup: bool = True
    ) -> str:
        """Apply a manifest URL or file and register its deletion."""
        self.info(f"Applying YAML from: {source}")
        output = await self.cluster.apply_manifest(source)
        if register_cleanup:
            self.registry.add_callback(
                lambda: self.cluster.delete_manifest(source),
                f"kubectl delete -f {source}",
            )
        return output

    async def port_forward(
        self,
        resource: str,
        namespace: str,
        local_port: int,
        remote_port: int,
    ) -> PortForward:
        """Open a port-forward whose closing is registered for cleanup."""
        handle = await self.cluster.port_forward(
            resource, namespace, local_port, remote_port
        )
        self.registry.add_callback(
            handle.close, f"stop port-forward {namespace}/{resource}"
        )
        return handle

    def step(self, title: str) -> None:
        """Log a step header."""
        log.info("")
        log.info(STEP_RULE)
        log.info("🔹 %s", title)
        log.info(STEP_RULE)

    def info(self, message: str) -> None:
        """Log an informational line."""
        log.info("ℹ️ %s", message)

    def passed(self, message: str) -> None:
        """Log a success line."""
        log.info("✅ %s", message)

    def warn(self, message: str) -> None:
        """Log a warning line."""
        log.warning("⚠️ %s", message)

    def failed_msg(self, message: str) -> None:
        """Log a failure line without ending the run."""
        log.error("❌ %s", message)

    def command(self, argv: Sequence[str] | str) -> None:
        """Log a command line the probe is about to run itself."""
        if not isinstance(argv, str):
            argv = " ".join(argv)
        log.info("▶ Running: %s", argv)

    def raw(self, text: str) -> None:
        """Log text verbatim, one record per line."""
        for line in text.splitlines() or [""]:
            log.info("%s", line)

    def log_results(self) -> None:
        """Log the summary of the recorded sub-checks."""
        self.recorder.log_summary(log)

    def _transition(self, target: RunState, *, from_any: bool = False) -> None:
        if self.state.is_terminal or (
            not from_any and self.state is not RunState.RUNNING
        ):
            raise InvalidTransitionError(
                f"Cannot transition from {self.state} to {target}"
            )
        self.state = target
        self.exit_code = 0 if target is RunState.SUCCEEDED else 1

    def _conclude(self) -> None:
        """Settle the verdict of a probe that returned without a terminal call."""
        if self.state.is_terminal:
            return
        if len(self.recorder):
            self.log_results()
        try:
            if self.recorder.all_passed():
                self.succeed("Probe completed")
            self.fail(f"Some tests failed: {', '.join(self.recorder.failed())}")
        except RunTerminated:
            pass

    def _record_crash(self, exc: BaseException) -> None:
        if isinstance(exc, asyncio.CancelledError | KeyboardInterrupt):
            message = "Test interrupted"
        else:
            message = f"Test aborted: {type(exc).__name__}: {exc}"
            log.debug("Probe raised", exc_info=exc)

        if self.state.is_terminal:
            self.failed_msg(message)
            return
        try:
            self.fatal(message)
        except RunTerminated:
            pass

    async def _shielded_cleanup(self) -> None:
        """Run the final cleanup to completion, even if cancelled again."""
        cleanup = asyncio.ensure_future(self._final_cleanup())
        task = asyncio.current_task()
        while not cleanup.done():
            try:
                await asyncio.shield(cleanup)
            except asyncio.CancelledError:
                if task is None or cleanup.cancelled():
                    raise
                task.uncancel()
                self.warn("Interrupted during cleanup, finishing cleanup first")
        cleanup.result()

    async def _final_cleanup(self) -> None:
        self.step("Final Cleanup")
        if self.exit_code:
            self.warn(f"Test failed with exit code {self.exit_code}. Cleaning up...")
        else:
            self.info("Test completed. Cleaning up...")

        if await self.registry.execute_once():
            self.passed("Cleanup completed")

    def _open_sink(self) -> None:
        self.run.run_dir.mkdir(parents=True, exist_ok=True)
        self._sink = logging.FileHandler(self.run.log_file, mode="w", encoding="utf-8")
        self._sink.setFormatter(logging.Formatter("%(message)s"))

        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.addHandler(self._sink)
        self._previous_level = package_logger.level
        if package_logger.getEffectiveLevel() > logging.INFO:
            package_logger.setLevel(logging.INFO)

    def _close_sink(self) -> None:
        if self._sink is None:
            return
        package_logger = logging.getLogger(PACKAGE_LOGGER)
        package_logger.removeHandler(self._sink)
        package_logger.setLevel(self._previous_level)
        self._sink.close()
        self._sink = None

    def _write_header(self) -> None:
        log.info(HEADER_RULE)
        log.info("  %s", self.run.name)
        log.info(HEADER_RULE)
        log.info("")
        log.info(
            "Test Started: %s",
            self.run.started_at.strftime("%Y-%m-%d %H:%M:%S UTC"),
        )
        log.info("Description: %s", self.run.description)
        log.info("Primary Namespace: %s", self.run.namespace)
        log.info("")

        requirement = self.run.requirement_file
        if requirement.is_file():
            self.step("Requirement Specification")
            log.info("")
            self.raw(requirement.read_text(encoding="utf-8"))
            log.info("")
        else:
            self.warn(f"REQUIREMENT.md not found at: {requirement}")

    def _install_signal_handlers(self) -> None:
        """Turn termination signals into cancellation of the current task."""
        task = asyncio.current_task()
        if task is None:
            return
        loop = asyncio.get_running_loop()
        for sig in TERMINATION_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig, task)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                log.debug("Cannot install handler for %s: %s", sig.name, e)
                continue
            self._signals.append(sig)

    def _on_signal(self, sig: signal.Signals, task: asyncio.Task[object]) -> None:
        if self._interrupted:
            self.warn(f"Received {sig.name} again, cleanup already in progress")
            return
        self._interrupted = True
        self.warn(f"Received {sig.name}, interrupting the test")
        task.cancel()

    def _remove_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals.clear()
