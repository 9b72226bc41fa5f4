"""Tests for the Helm deployer."""

from collections.abc import Sequence
from unittest.mock import AsyncMock, patch

import pytest

from ai_conformance.cleanup import CleanupRegistry
from ai_conformance.errors import CommandError
from ai_conformance.helm import HelmDeployer
from ai_conformance.models.cleanup import CommandCleanup
from ai_conformance.process import CommandResult


def result(argv: Sequence[str], returncode: int = 0, stderr: str = "") -> CommandResult:
    """Build a command result."""
    return CommandResult(
        argv=tuple(argv), returncode=returncode, stdout="", stderr=stderr
    )


@pytest.fixture
def deployer(registry: CleanupRegistry) -> HelmDeployer:
    """Create a deployer bound to the test registry."""
    return HelmDeployer(registry=registry, timeout=30)


class TestHelmDeployer:
    """Tests for HelmDeployer."""

    async def test_install_registers_uninstall(
        self, deployer: HelmDeployer, registry: CleanupRegistry
    ) -> None:
        """Installing a release registers its uninstall command."""
        run_command = AsyncMock(side_effect=lambda argv, **kwargs: result(argv))

        with patch("ai_conformance.helm.run_command", run_command):
            await deployer.install(
                "kueue", "kueue/kueue", "kueue-system", "--create-namespace"
            )

        run_command.assert_awaited_once_with(
            [
                "helm",
                "install",
                "kueue",
                "kueue/kueue",
                "-n",
                "kueue-system",
                "--create-namespace",
            ],
            timeout=30,
        )
        assert registry.pending[0] == CommandCleanup(
            argv=("helm", "uninstall", "kueue", "-n", "kueue-system", "--wait"),
            description="helm uninstall kueue -n kueue-system",
        )

    async def test_failed_install_still_registers_uninstall(
        self, deployer: HelmDeployer, registry: CleanupRegistry
    ) -> None:
        """A partially installed release is still uninstalled at exit."""
        run_command = AsyncMock(
            side_effect=lambda argv, **kwargs: result(argv, 1, "timed out")
        )

        with (
            patch("ai_conformance.helm.run_command", run_command),
            pytest.raises(CommandError) as exc_info,
        ):
            await deployer.install("kueue", "kueue/kueue", "kueue-system")

        assert exc_info.value.returncode == 1
        assert exc_info.value.output == "timed out"
        assert isinstance(registry.pending[0], CommandCleanup)

    async def test_add_repo_tolerates_existing(self, deployer: HelmDeployer) -> None:
        """An already configured repository is not an error."""
        run_command = AsyncMock(
            side_effect=[
                result(
                    ["helm", "repo", "add"],
                    1,
                    'repository name "kueue" already exists',
                ),
                result(["helm", "repo", "update"]),
            ]
        )

        with patch("ai_conformance.helm.run_command", run_command):
            await deployer.add_repo("kueue", "https://kueue.example.com/charts")

        assert run_command.await_count == 2

    async def test_add_repo_failure(self, deployer: HelmDeployer) -> None:
        """Other repository errors are raised."""
        run_command = AsyncMock(
            return_value=result(["helm", "repo", "add"], 1, "invalid URL")
        )

        with (
            patch("ai_conformance.helm.run_command", run_command),
            pytest.raises(CommandError),
        ):
            await deployer.add_repo("kueue", "not a url")

    async def test_uninstall_is_best_effort(self, deployer: HelmDeployer) -> None:
        """A failing uninstall reports False instead of raising."""
        run_command = AsyncMock(
            return_value=result(["helm", "uninstall"], 1, "release not found")
        )

        with patch("ai_conformance.helm.run_command", run_command):
            assert not await deployer.uninstall("kueue", "kueue-system")
