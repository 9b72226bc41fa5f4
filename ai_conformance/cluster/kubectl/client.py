"""Cluster client implemented on top of the kubectl command line."""

import logging
from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

from ai_conformance.cluster.base import ClusterClient, ExecResult
from ai_conformance.cluster.kubectl.config import KubectlConfig
from ai_conformance.cluster.kubectl.port_forward import KubectlPortForward
from ai_conformance.errors import (
    ApplyError,
    CommandError,
    ConnectivityError,
    NotFoundError,
    WaitTimeoutError,
)
from ai_conformance.process import CommandResult, run_command

log = logging.getLogger(__name__)

CONNECTIVITY_MARKERS = (
    "unable to connect to the server",
    "connection refused",
    "no such host",
    "i/o timeout",
    "tls handshake timeout",
    "the server has asked for the client to provide credentials",
)

NOT_FOUND_MARKERS = ("notfound", "not found")


def is_connectivity_failure(output: str) -> bool:
    """Check if kubectl output indicates the control plane is unreachable."""
    lowered = output.lower()
    return any(marker in lowered for marker in CONNECTIVITY_MARKERS)


def is_not_found(output: str) -> bool:
    """Check if kubectl output reports a missing object."""
    lowered = output.lower().replace(" ", "")
    return any(marker.replace(" ", "") in lowered for marker in NOT_FOUND_MARKERS)


def jsonpath_template(field_path: str) -> str:
    """Wrap a bare field path such as ".status.phase" in braces."""
    if field_path.startswith("{"):
        return field_path
    return f"{{{field_path}}}"


def is_manifest_reference(content: str) -> bool:
    """Check if apply content is a URL or a local file rather than inline YAML."""
    if "\n" in content:
        return False
    if content.startswith(("http://", "https://")):
        return True
    return Path(content).is_file()


def namespace_args(namespace: str | None) -> list[str]:
    """Build the namespace flag for namespaced calls."""
    return ["-n", namespace] if namespace else []


@dataclass(frozen=True, kw_only=True)
class KubectlClusterClient(ClusterClient):
    """Cluster client that shells out to kubectl."""

    config: KubectlConfig
    _port_forwards: list[KubectlPortForward] = field(
        default_factory=list, init=False, repr=False
    )

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: KubectlConfig
    ) -> AsyncGenerator["KubectlClusterClient", None]:
        """Create client and close any port-forward left open on exit."""
        client = cls(config=config)
        try:
            yield client
        finally:
            for handle in client._port_forwards:
                await handle.close()

    def _base_argv(self) -> list[str]:
        argv = [self.config.kubectl_path]
        if self.config.kubeconfig:
            argv.extend(["--kubeconfig", self.config.kubeconfig])
        if self.config.context:
            argv.extend(["--context", self.config.context])
        return argv

    async def _kubectl(
        self,
        args: Sequence[str],
        *,
        stdin: str | None = None,
        timeout: float | None = None,
        echo: bool = True,
    ) -> CommandResult:
        """Run kubectl, translating unreachable-cluster failures."""
        argv = [*self._base_argv(), *args]
        try:
            result = await run_command(
                argv,
                stdin=stdin,
                timeout=timeout or self.config.request_timeout,
                echo=echo,
            )
        except FileNotFoundError:
            raise ConnectivityError(
                f"kubectl command not found: {self.config.kubectl_path}"
            ) from None

        if not result.ok:
            if not echo:
                log.debug("kubectl %s failed: %s", " ".join(args), result.output)
            if is_connectivity_failure(result.output):
                raise ConnectivityError(
                    f"Cannot connect to Kubernetes cluster: {result.output.strip()}"
                )
        return result

    async def check_access(self) -> None:
        """Verify the control plane answers ``kubectl cluster-info``."""
        result = await self._kubectl(["cluster-info"], echo=False)
        if not result.ok:
            raise ConnectivityError(
                f"Cannot connect to Kubernetes cluster: {result.output.strip()}"
            )

    async def apply_manifest(
        self,
        content: str,
        namespace: str | None = None,
        *,
        server_side: bool = False,
    ) -> str:
        """Apply inline YAML, a local file, or a URL."""
        args = ["apply"]
        if server_side:
            args.append("--server-side")
        args.extend(namespace_args(namespace))

        if is_manifest_reference(content):
            result = await self._kubectl([*args, "-f", content])
        else:
            result = await self._kubectl([*args, "-f", "-"], stdin=content)

        if not result.ok:
            raise ApplyError(
                f"Failed to apply manifest (exit code {result.returncode})",
                output=result.output,
            )
        return result.output

    async def delete_manifest(
        self, source: str, *, ignore_missing: bool = True
    ) -> str:
        """Delete the objects declared by a file or URL."""
        args = ["delete", "-f", source]
        if ignore_missing:
            args.append("--ignore-not-found=true")
        return (await self._kubectl(args)).check().output

    async def delete_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        *,
        ignore_missing: bool = True,
        timeout: float | None = None,
    ) -> str:
        """Delete one object, optionally bounded by a server-side timeout."""
        args = ["delete", kind, name, *namespace_args(namespace)]
        if ignore_missing:
            args.append("--ignore-not-found=true")
        if timeout is not None:
            args.append(f"--timeout={int(timeout)}s")

        process_timeout = None
        if timeout is not None:
            process_timeout = timeout + self.config.request_timeout
        result = await self._kubectl(args, timeout=process_timeout)
        if not result.ok and is_not_found(result.output):
            raise NotFoundError(f"{kind} {name} not found")
        return result.check().output

    async def get_field(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        field_path: str,
    ) -> str | None:
        """Read a field via ``-o jsonpath``; missing objects yield None."""
        result = await self._kubectl(
            [
                "get",
                kind,
                name,
                *namespace_args(namespace),
                "-o",
                f"jsonpath={jsonpath_template(field_path)}",
            ],
            echo=False,
        )
        if not result.ok:
            if is_not_found(result.output):
                return None
            result.check()
        value = result.stdout.strip()
        return value or None

    async def resource_exists(
        self, kind: str, name: str, namespace: str | None = None
    ) -> bool:
        """Check existence with ``--ignore-not-found``."""
        args = ["get", kind, name, *namespace_args(namespace)]
        result = await self._kubectl(
            [*args, "-o", "name", "--ignore-not-found"], echo=False
        )
        if not result.ok:
            if is_not_found(result.output):
                return False
            result.check()
        return bool(result.stdout.strip())

    async def list_names(
        self,
        kind: str,
        namespace: str | None = None,
        selector: str | None = None,
    ) -> Sequence[str]:
        """List object names without their "kind/" prefix."""
        args = ["get", kind, *namespace_args(namespace), "-o", "name"]
        if selector:
            args.extend(["-l", selector])
        result = (await self._kubectl(args, echo=False)).check()
        return [
            line.split("/", 1)[-1]
            for line in result.stdout.splitlines()
            if line.strip()
        ]

    async def api_resource_registered(
        self, resource: str, api_group: str | None = None
    ) -> bool:
        """Match the NAME column of ``kubectl api-resources``."""
        args = ["api-resources", "--no-headers"]
        if api_group:
            args.append(f"--api-group={api_group}")
        result = await self._kubectl(args, echo=False)
        if not result.ok:
            return False
        return any(
            line.split()[0] == resource
            for line in result.stdout.splitlines()
            if line.strip()
        )

    async def api_version_registered(self, group_version: str) -> bool:
        """Match a line of ``kubectl api-versions`` exactly."""
        result = await self._kubectl(["api-versions"], echo=False)
        if not result.ok:
            return False
        return group_version in {line.strip() for line in result.stdout.splitlines()}

    async def exec_in_pod(
        self,
        pod: str,
        namespace: str,
        command: Sequence[str],
        container: str | None = None,
    ) -> ExecResult:
        """Run a command through ``kubectl exec``."""
        args = ["exec", pod, "-n", namespace]
        if container:
            args.extend(["-c", container])
        result = await self._kubectl([*args, "--", *command])
        return ExecResult(stdout=result.stdout, exit_code=result.returncode)

    async def wait_for_condition(
        self,
        kind: str,
        target: str,
        condition: str,
        namespace: str | None,
        timeout: float,
    ) -> str:
        """Delegate to ``kubectl wait``."""
        args = ["wait", f"--for=condition={condition}"]
        if "=" in target:
            args.extend([kind, "-l", target])
        else:
            args.append(f"{kind}/{target}")
        args.extend([*namespace_args(namespace), f"--timeout={int(timeout)}s"])

        result = await self._kubectl(
            args, timeout=timeout + self.config.request_timeout
        )
        if result.ok:
            return result.output
        if "timed out" in result.output.lower():
            raise WaitTimeoutError(
                f"Timed out after {timeout}s waiting for {kind} {target} "
                f"condition {condition}",
                last_state=result.output,
            )
        if is_not_found(result.output):
            raise NotFoundError(f"{kind} {target} not found")
        raise CommandError(list(result.argv), result.returncode, result.output)

    async def pod_logs(
        self, pod: str, namespace: str, container: str | None = None
    ) -> str:
        """Fetch logs through ``kubectl logs``."""
        args = ["logs", pod, "-n", namespace]
        if container:
            args.extend(["-c", container])
        return (await self._kubectl(args, echo=False)).check().stdout

    async def port_forward(
        self,
        resource: str,
        namespace: str,
        local_port: int,
        remote_port: int,
    ) -> KubectlPortForward:
        """Spawn ``kubectl port-forward`` and wait until it listens."""
        argv = [
            *self._base_argv(),
            "port-forward",
            "-n",
            namespace,
            resource,
            f"{local_port}:{remote_port}",
        ]
        try:
            handle = await KubectlPortForward.start(
                argv,
                local_port=local_port,
                description=f"{namespace}/{resource} {local_port}:{remote_port}",
                ready_timeout=self.config.port_forward_ready_timeout,
            )
        except FileNotFoundError:
            raise ConnectivityError(
                f"kubectl command not found: {self.config.kubectl_path}"
            ) from None
        self._port_forwards.append(handle)
        return handle
