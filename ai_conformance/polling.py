"""Bounded polling until a condition holds."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ai_conformance.errors import WaitTimeoutError

log = logging.getLogger(__name__)

type ProgressCallback[S] = Callable[[S | None, float], None]


def _log_progress(description: str) -> ProgressCallback[object]:
    def _progress(state: object | None, elapsed: float) -> None:
        log.info(
            "Waiting for %s: current=%s, elapsed=%.0fs", description, state, elapsed
        )

    return _progress


async def wait_until[S](
    check: Callable[[], Awaitable[S]],
    predicate: Callable[[S], bool] = bool,
    *,
    timeout: float,
    interval: float = 5,
    description: str = "condition",
    on_progress: ProgressCallback[S] | None = None,
    progress_interval: float | None = None,
) -> S:
    """Poll ``check`` until ``predicate`` holds for its result.

    The check runs once before any sleep, so a condition that already holds
    returns immediately. Sleeps are clipped to the remaining budget and each
    check is cut off one interval past the deadline, so the total time spent
    stays within one interval of the timeout. An exception from the check,
    including a cut-off, counts as "not satisfied yet"; only cancellation stops
    the loop early.

    Args:
        check: Side-effect-free query returning the current state
        predicate: Condition over the state
        timeout: Total budget in seconds
        interval: Seconds between checks
        description: What is being waited for, used in logs and errors
        on_progress: Called with (state, elapsed) while still waiting;
            defaults to an INFO log line
        progress_interval: Minimum seconds between progress callbacks
            (default: every poll)

    Returns:
        The first state that satisfied the predicate

    Raises:
        WaitTimeoutError: If the predicate never held within timeout

    """
    loop = asyncio.get_running_loop()
    start = loop.time()
    deadline = start + timeout
    progress = on_progress or _log_progress(description)
    last_progress: float | None = None
    state: S | None = None
    last_error: Exception | None = None

    while True:
        try:
            async with asyncio.timeout(max(deadline - loop.time(), 0) + interval):
                state = await check()
        except Exception as e:
            log.debug("Check for %s raised %r, retrying", description, e)
            last_error = e
        else:
            last_error = None
            if predicate(state):
                return state

        now = loop.time()
        if now >= deadline:
            raise WaitTimeoutError(
                f"Timed out after {timeout}s waiting for {description}",
                last_state=state,
                last_error=last_error,
            )

        if (
            last_progress is None
            or progress_interval is None
            or now - last_progress >= progress_interval
        ):
            progress(state, now - start)
            last_progress = now

        await asyncio.sleep(min(interval, deadline - now))
