"""Models for sub-check verdicts and run state."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Literal


@dataclass(frozen=True, kw_only=True)
class SubCheckResult:
    """One named verdict within a multi-part probe."""

    name: str
    passed: bool


class RunState(StrEnum):
    """States of the test lifecycle state machine."""

    INITIALIZED = "initialized"
    PREFLIGHT_CHECKED = "preflight_checked"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions are allowed."""
        return self in {RunState.SUCCEEDED, RunState.FAILED}

    @property
    def status(self) -> Literal["running", "passed", "failed"]:
        """Collapse the lifecycle state into the run's terminal status."""
        if self is RunState.SUCCEEDED:
            return "passed"
        if self is RunState.FAILED:
            return "failed"
        return "running"
