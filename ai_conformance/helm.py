"""Package-manager-style deployer for third-party controllers."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from ai_conformance.cleanup import CleanupRegistry
from ai_conformance.process import run_command

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class HelmDeployer:
    """Installs Helm releases and registers their removal."""

    registry: CleanupRegistry
    helm_path: str = "helm"
    timeout: float = 600

    async def add_repo(self, name: str, url: str) -> None:
        """Add a chart repository and refresh the index."""
        log.info("ℹ️ Adding Helm repository: %s", name)
        result = await run_command(
            [self.helm_path, "repo", "add", name, url], timeout=self.timeout
        )
        if not result.ok and "already exists" not in result.output:
            result.check()
        update = await run_command(
            [self.helm_path, "repo", "update"], timeout=self.timeout
        )
        update.check()

    async def install(
        self,
        release: str,
        chart: str,
        namespace: str,
        *args: str,
    ) -> str:
        """Install a release; its uninstall is registered before installing.

        Args:
            release: Release name
            chart: Chart reference (e.g. "kueue/kueue")
            namespace: Namespace of the release
            *args: Extra helm arguments (e.g. "--set", "a=b", "--wait")

        Returns:
            Output of helm install

        Raises:
            CommandError: If helm install failed

        """
        log.info(
            "ℹ️ Installing Helm chart: %s (%s) in namespace %s",
            release,
            chart,
            namespace,
        )
        self.registry.add_command(
            self.uninstall_argv(release, namespace),
            description=f"helm uninstall {release} -n {namespace}",
        )
        result = await run_command(
            [self.helm_path, "install", release, chart, "-n", namespace, *args],
            timeout=self.timeout,
        )
        return result.check().output

    async def uninstall(self, release: str, namespace: str) -> bool:
        """Uninstall a release now; failures are logged, not raised."""
        log.info(
            "ℹ️ Uninstalling Helm chart: %s from namespace %s", release, namespace
        )
        result = await run_command(
            self.uninstall_argv(release, namespace), timeout=self.timeout
        )
        if not result.ok:
            log.warning("⚠️ helm uninstall %s failed", release)
        return result.ok

    def uninstall_argv(self, release: str, namespace: str) -> Sequence[str]:
        """Command line that removes a release and waits for its resources."""
        return [self.helm_path, "uninstall", release, "-n", namespace, "--wait"]
