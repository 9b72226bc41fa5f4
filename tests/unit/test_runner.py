"""Tests for the probe runner."""

import json
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from ai_conformance.cluster.kubectl.config import KubectlConfig
from ai_conformance.cluster.backends import ClusterBackendManifest
from ai_conformance.lifecycle import TestLifecycle
from ai_conformance.runner import format_output, main_for, run_probe
from ai_conformance.testing.factories import HarnessConfigFactory, TestRunFactory
from ai_conformance.testing.fake_cluster import FakeClusterClient


@pytest.fixture
def backend_configs() -> list[KubectlConfig]:
    """Configs the fake backend factory was called with."""
    return []


@pytest.fixture
def fake_manifest(
    cluster: FakeClusterClient, backend_configs: list[KubectlConfig]
) -> ClusterBackendManifest[KubectlConfig]:
    """Backend manifest whose factory yields the fake cluster."""

    @asynccontextmanager
    async def _factory(
        config: KubectlConfig,
    ) -> AsyncGenerator[FakeClusterClient, None]:
        backend_configs.append(config)
        yield cluster

    return ClusterBackendManifest(config_cls=KubectlConfig, client_factory=_factory)


async def passing_probe(lifecycle: TestLifecycle) -> None:
    """Probe recording one passed sub-check."""
    lifecycle.recorder.record("gpu-visible", True)
    lifecycle.finish_from_results()


async def failing_probe(lifecycle: TestLifecycle) -> None:
    """Probe failing outright."""
    lifecycle.fail("No GPU found")


def test_format_output(cluster: FakeClusterClient, tmp_path: Path) -> None:
    """Formats the run identity, verdict and sub-checks."""
    lifecycle = TestLifecycle(
        run=TestRunFactory.build(name="GPU", namespace="probe-ns", run_dir=tmp_path),
        cluster=cluster,
    )
    lifecycle.recorder.record("gpu-visible", True)
    lifecycle.recorder.record("metrics", False)

    output = format_output(lifecycle)

    assert output == {
        "name": "GPU",
        "namespace": "probe-ns",
        "status": "running",
        "exit_code": None,
        "log_file": str(tmp_path / "test_result.log"),
        "checks": [
            {"name": "gpu-visible", "passed": True},
            {"name": "metrics", "passed": False},
        ],
    }


async def test_run_probe_success(
    cluster: FakeClusterClient,
    fake_manifest: ClusterBackendManifest[KubectlConfig],
    backend_configs: list[KubectlConfig],
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Runs the probe with the loaded backend and prints the outcome."""
    with patch(
        "ai_conformance.runner.load_backend_manifest", return_value=fake_manifest
    ) as load:
        exit_code = await run_probe(
            passing_probe,
            name="GPU",
            description="GPUs are schedulable",
            namespace="probe-ns",
            run_dir=tmp_path,
            backend_config_json='{"context": "kind-ai"}',
            config=HarnessConfigFactory.build(),
        )

    assert exit_code == 0
    load.assert_called_once_with("kubectl")
    assert backend_configs == [KubectlConfig(context="kind-ai")]

    output = json.loads(capsys.readouterr().out)
    assert output["status"] == "passed"
    assert output["checks"] == [{"name": "gpu-visible", "passed": True}]
    assert (tmp_path / "test_result.log").is_file()


async def test_run_probe_registers_extra_targets(
    cluster: FakeClusterClient,
    fake_manifest: ClusterBackendManifest[KubectlConfig],
    tmp_path: Path,
) -> None:
    """Additional namespaces and CRDs are cleaned up with the run."""
    cluster.add("namespace", "gpu-operator")
    cluster.add("crd", "clusterpolicies.nvidia.com")

    with patch(
        "ai_conformance.runner.load_backend_manifest", return_value=fake_manifest
    ):
        exit_code = await run_probe(
            failing_probe,
            name="GPU",
            description="GPUs are schedulable",
            namespace="probe-ns",
            run_dir=tmp_path,
            additional_namespaces=["gpu-operator"],
            crds=["clusterpolicies.nvidia.com"],
            config=HarnessConfigFactory.build(),
        )

    assert exit_code == 1
    assert cluster.objects == {}
    assert ("delete", "crd", "clusterpolicies.nvidia.com", "") in cluster.calls


def test_main_for_exits_with_probe_code(
    fake_manifest: ClusterBackendManifest[KubectlConfig], tmp_path: Path
) -> None:
    """The CLI exits with the probe's exit code."""
    with (
        patch(
            "ai_conformance.runner.load_backend_manifest", return_value=fake_manifest
        ),
        pytest.raises(SystemExit) as exc_info,
    ):
        main_for(
            failing_probe,
            name="GPU",
            description="GPUs are schedulable",
            namespace="probe-ns",
            argv=[
                "--run-dir",
                str(tmp_path),
                "--harness-config",
                '{"settle_seconds": 0, "namespace_gone_timeout": 0.05}',
            ],
        )

    assert exc_info.value.code == 1
    assert "No GPU found" in (tmp_path / "test_result.log").read_text()


def test_main_for_defaults_run_dir_to_probe_directory() -> None:
    """Without --run-dir the log lands beside the probe module."""
    with (
        patch("ai_conformance.runner.run_probe", Mock()) as run_probe_mock,
        patch("ai_conformance.runner.asyncio.run", return_value=0),
        pytest.raises(SystemExit) as exc_info,
    ):
        main_for(
            passing_probe,
            name="GPU",
            description="GPUs are schedulable",
            namespace="probe-ns",
            argv=[],
        )

    assert exc_info.value.code == 0
    run_dir = run_probe_mock.call_args.kwargs["run_dir"]
    assert run_dir == Path(__file__).resolve().parent
