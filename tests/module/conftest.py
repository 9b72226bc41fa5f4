"""Fixtures for module tests using a K3s testcontainer."""

import shutil
from collections.abc import Generator
from pathlib import Path

import pytest
from testcontainers.core import testcontainers_config
from testcontainers.k3s import K3SContainer

from ai_conformance.cluster.kubectl import KubectlConfig
from ai_conformance.lifecycle import HarnessConfig


@pytest.fixture(scope="session", autouse=True)
def _disable_ryuk() -> None:
    """Disable the extra cleanup instance, we use contexts to clean containers."""
    testcontainers_config.ryuk_disabled = True


@pytest.fixture(scope="session")
def kubectl_path() -> str:
    """Locate kubectl, skipping the module when it is not installed."""
    path = shutil.which("kubectl")
    if path is None:
        pytest.skip("kubectl is not installed")
    return path


@pytest.fixture(scope="session")
def k3s(kubectl_path: str) -> Generator[K3SContainer, None, None]:
    """Start a single-node K3s cluster."""
    with K3SContainer() as container:
        yield container


@pytest.fixture(scope="session")
def kubeconfig(k3s: K3SContainer, tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Write the cluster's kubeconfig to a file."""
    path = tmp_path_factory.mktemp("k3s") / "kubeconfig.yaml"
    path.write_text(k3s.config_yaml())
    return path


@pytest.fixture
def kubectl_config(kubectl_path: str, kubeconfig: Path) -> KubectlConfig:
    """kubectl backend configuration pointing at the K3s cluster."""
    return KubectlConfig(
        kubectl_path=kubectl_path,
        kubeconfig=str(kubeconfig),
        request_timeout=60,
    )


@pytest.fixture
def harness_config() -> HarnessConfig:
    """Harness timings suitable for a real cluster."""
    return HarnessConfig(
        settle_seconds=0,
        namespace_delete_timeout=120,
        namespace_gone_timeout=120,
        namespace_poll_interval=1,
    )
