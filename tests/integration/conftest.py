"""Fixtures for integration tests."""

from pathlib import Path
from typing import Any, Protocol

import pytest

from ai_conformance.cluster.kubectl.config import KubectlConfig
from ai_conformance.testing.factories import KubectlConfigFactory


class FakeKubectlFn(Protocol):
    """Protocol for fake kubectl creation function."""

    def __call__(self, script: str, **overrides: Any) -> KubectlConfig:
        """Create a kubectl stand-in running ``script`` and return its config."""


class CallsFn(Protocol):
    """Protocol for reading the recorded kubectl invocations."""

    def __call__(self) -> list[str]:
        """Return one line of arguments per invocation."""


@pytest.fixture
def calls_log(tmp_path: Path) -> Path:
    """File the fake kubectl appends its arguments to."""
    return tmp_path / "calls.log"


@pytest.fixture
def fake_kubectl(tmp_path: Path, calls_log: Path) -> FakeKubectlFn:
    """Return a function that installs a shell script in place of kubectl."""

    def _create(script: str, **overrides: Any) -> KubectlConfig:
        path = tmp_path / "kubectl"
        path.write_text(
            "#!/bin/sh\n"
            f"printf '%s\\n' \"$*\" >> '{calls_log}'\n"
            f"{script}\n"
        )
        path.chmod(0o755)
        return KubectlConfigFactory.build(kubectl_path=str(path), **overrides)

    return _create


@pytest.fixture
def kubectl_calls(calls_log: Path) -> CallsFn:
    """Return a function listing the fake kubectl's invocations."""

    def _read() -> list[str]:
        if not calls_log.exists():
            return []
        return calls_log.read_text().splitlines()

    return _read
