"""Error taxonomy surfaced to probe code."""

from typing import Any


class HarnessError(Exception):
    """Base class for all harness errors."""


class ConnectivityError(HarnessError):
    """Raised when the cluster control plane cannot be reached."""


class ApplyError(HarnessError):
    """Raised when the cluster rejects a manifest.

    The raw diagnostic output (schema validation, admission denial, ...) is
    kept in ``output`` so it can be logged unaltered.
    """

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class NotFoundError(HarnessError):
    """Raised when an object must exist for the operation to make sense."""


class CommandError(HarnessError):
    """Raised when an external command exits with a non-zero status."""

    def __init__(self, argv: list[str], returncode: int, output: str) -> None:
        super().__init__(
            f"Command {' '.join(argv)!r} failed with exit code {returncode}"
        )
        self.argv = argv
        self.returncode = returncode
        self.output = output


class WaitTimeoutError(HarnessError, TimeoutError):
    """Raised when a bounded wait expires before its condition held."""

    def __init__(
        self,
        message: str,
        last_state: Any = None,
        last_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.last_state = last_state
        self.last_error = last_error


class MetricsEndpointError(HarnessError):
    """Raised when a metrics endpoint is unreachable or returns no data."""


class InvalidTransitionError(HarnessError):
    """Raised on a lifecycle transition out of a terminal state."""
