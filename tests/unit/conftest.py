"""Fixtures for unit tests."""

from collections.abc import Generator
from pathlib import Path

import pytest
from aioresponses import aioresponses as aioresponses_cls

from ai_conformance.cleanup import CleanupRegistry
from ai_conformance.testing.fake_cluster import FakeClusterClient


@pytest.fixture
def aioresponses() -> Generator[aioresponses_cls, None, None]:
    """Intercept every aiohttp request."""
    with aioresponses_cls() as mocked:
        yield mocked


@pytest.fixture
def cluster() -> FakeClusterClient:
    """Create an empty in-memory cluster."""
    return FakeClusterClient()


@pytest.fixture
def registry(cluster: FakeClusterClient) -> CleanupRegistry:
    """Create a registry with fast namespace polling."""
    return CleanupRegistry(
        cluster=cluster,
        primary_namespace="probe-ns",
        namespace_gone_timeout=0.05,
        namespace_poll_interval=0.01,
    )


@pytest.fixture
def run_dir(tmp_path: Path) -> Path:
    """Directory holding the run's log sink."""
    return tmp_path / "run"
