"""Aggregation of named sub-check verdicts into one run verdict."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from ai_conformance.models.result import SubCheckResult

STATUS_SYMBOLS = {
    True: "✅",
    False: "❌",
}


@dataclass(kw_only=True)
class ResultRecorder:
    """Accumulates sub-check outcomes for a single run.

    Recording a name twice overwrites the earlier verdict but keeps its
    original position in the summary.
    """

    _results: dict[str, bool] = field(default_factory=dict, init=False, repr=False)

    def __len__(self) -> int:
        return len(self._results)

    def record(self, name: str, passed: bool) -> None:
        """Record or overwrite the verdict of a sub-check."""
        self._results[name] = passed

    def all_passed(self) -> bool:
        """True unless a recorded sub-check failed; vacuously true when empty."""
        return all(self._results.values())

    def failed(self) -> Sequence[str]:
        """Names of the failed sub-checks, in insertion order."""
        return [name for name, passed in self._results.items() if not passed]

    def summarize(self) -> Sequence[SubCheckResult]:
        """Verdicts in insertion order."""
        return [
            SubCheckResult(name=name, passed=passed)
            for name, passed in self._results.items()
        ]

    def log_summary(self, log: logging.Logger) -> None:
        """Log a formatted summary of the recorded verdicts."""
        log.info("")
        log.info("Test Results Summary:")
        for result in self.summarize():
            log.info("%s %s", STATUS_SYMBOLS[result.passed], result.name)
        log.info("")
