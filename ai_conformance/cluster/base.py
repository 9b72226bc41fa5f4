"""Abstract base class for cluster API clients."""

import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Self

from ai_conformance.errors import NotFoundError
from ai_conformance.polling import wait_until


@dataclass(frozen=True, kw_only=True)
class ExecResult:
    """Output of a command executed inside a container."""

    stdout: str
    exit_code: int


class PortForward(ABC):
    """A local tunnel held open until closed."""

    local_port: int

    @abstractmethod
    async def close(self) -> None:
        """Tear the tunnel down; safe to call more than once."""

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class ClusterClient(ABC):
    """Abstract base for clients of a cluster's control-plane API.

    This is the only component that issues calls against the cluster. The
    abstract methods are the primitives a backend must provide; the concrete
    helpers below are built from them.
    """

    @abstractmethod
    async def check_access(self) -> None:
        """Verify the control plane is reachable.

        Raises:
            ConnectivityError: If the cluster cannot be reached

        """

    @abstractmethod
    async def apply_manifest(
        self,
        content: str,
        namespace: str | None = None,
        *,
        server_side: bool = False,
    ) -> str:
        """Create or update the objects declared in ``content``.

        Args:
            content: Manifest text, or a URL/path to one
            namespace: Target namespace for namespaced objects
            server_side: Use server-side apply

        Returns:
            Raw output of the apply

        Raises:
            ApplyError: If the cluster rejected any object

        """

    @abstractmethod
    async def delete_manifest(
        self, source: str, *, ignore_missing: bool = True
    ) -> str:
        """Delete every object declared by a manifest URL or path."""

    @abstractmethod
    async def delete_resource(
        self,
        kind: str,
        name: str,
        namespace: str | None = None,
        *,
        ignore_missing: bool = True,
        timeout: float | None = None,
    ) -> str:
        """Delete one object; absent objects are a no-op when ignore_missing."""

    @abstractmethod
    async def get_field(
        self,
        kind: str,
        name: str,
        namespace: str | None,
        field_path: str,
    ) -> str | None:
        """Read one field of an object.

        Args:
            kind: Resource kind (e.g. "pod", "deployment")
            name: Object name
            namespace: Namespace, None for cluster-scoped objects
            field_path: JSONPath of the field (e.g. ".status.phase")

        Returns:
            The field value, or None when the object or field does not exist

        """

    @abstractmethod
    async def resource_exists(
        self, kind: str, name: str, namespace: str | None = None
    ) -> bool:
        """Check if an object exists."""

    @abstractmethod
    async def list_names(
        self,
        kind: str,
        namespace: str | None = None,
        selector: str | None = None,
    ) -> Sequence[str]:
        """List object names, optionally filtered by a label selector."""

    @abstractmethod
    async def api_resource_registered(
        self, resource: str, api_group: str | None = None
    ) -> bool:
        """Check if the API server serves a resource (e.g. "gateways")."""

    @abstractmethod
    async def api_version_registered(self, group_version: str) -> bool:
        """Check if the API server serves a group/version."""

    @abstractmethod
    async def exec_in_pod(
        self,
        pod: str,
        namespace: str,
        command: Sequence[str],
        container: str | None = None,
    ) -> ExecResult:
        """Run a command inside a pod's container."""

    @abstractmethod
    async def wait_for_condition(
        self,
        kind: str,
        target: str,
        condition: str,
        namespace: str | None,
        timeout: float,
    ) -> str:
        """Block until objects report a condition.

        Args:
            kind: Resource kind
            target: Object name, or a label selector containing "="
            condition: Condition name (e.g. "ready", "available")
            namespace: Namespace of the objects
            timeout: Seconds to wait

        Returns:
            Raw output of the wait

        Raises:
            WaitTimeoutError: If the condition did not hold within timeout

        """

    @abstractmethod
    async def pod_logs(
        self, pod: str, namespace: str, container: str | None = None
    ) -> str:
        """Fetch a pod's logs."""

    @abstractmethod
    async def port_forward(
        self,
        resource: str,
        namespace: str,
        local_port: int,
        remote_port: int,
    ) -> PortForward:
        """Open a local tunnel to a pod or service.

        The caller owns the returned handle and must close it, typically by
        registering ``handle.close`` for cleanup.
        """

    async def namespace_exists(self, namespace: str) -> bool:
        """Check if a namespace exists."""
        return await self.resource_exists("namespace", namespace)

    async def ensure_namespace(self, namespace: str) -> bool:
        """Create a namespace unless it exists; returns True when created."""
        if await self.namespace_exists(namespace):
            return False
        await self.apply_manifest(
            f"apiVersion: v1\nkind: Namespace\nmetadata:\n  name: {namespace}\n"
        )
        return True

    async def pod_exit_code(
        self, pod: str, namespace: str, container: str | None = None
    ) -> int | None:
        """Exit code of a pod's terminated container.

        Returns:
            The exit code, or None while the container has not terminated

        Raises:
            NotFoundError: If the pod does not exist

        """
        if container:
            path = (
                f".status.containerStatuses[?(@.name=='{container}')]"
                ".state.terminated.exitCode"
            )
        else:
            path = ".status.containerStatuses[0].state.terminated.exitCode"

        if not await self.resource_exists("pod", pod, namespace):
            raise NotFoundError(f"Pod {namespace}/{pod} not found")

        value = await self.get_field("pod", pod, namespace, path)
        return int(value) if value else None

    async def wait_for_pod_phase(
        self,
        pod: str,
        namespace: str,
        phase_pattern: str,
        *,
        timeout: float = 300,
        interval: float = 5,
    ) -> str:
        """Wait until a pod's phase matches a regex such as "Succeeded|Failed".

        Returns:
            The phase that matched

        Raises:
            WaitTimeoutError: If no matching phase was observed within timeout

        """
        pattern = re.compile(phase_pattern)

        async def _phase() -> str:
            return await self.get_field("pod", pod, namespace, ".status.phase") or ""

        return await wait_until(
            _phase,
            lambda value: bool(value) and pattern.search(value) is not None,
            timeout=timeout,
            interval=interval,
            description=f"pod {namespace}/{pod} phase {phase_pattern}",
        )

    async def wait_for_count(
        self,
        kind: str,
        expected: int,
        *,
        namespace: str | None = None,
        selector: str | None = None,
        timeout: float = 600,
        interval: float = 15,
    ) -> int:
        """Wait until exactly ``expected`` objects match (e.g. GPU nodes)."""

        async def _count() -> int:
            return len(await self.list_names(kind, namespace, selector))

        return await wait_until(
            _count,
            lambda count: count == expected,
            timeout=timeout,
            interval=interval,
            description=f"{kind} count {expected} ({selector or 'all'})",
        )
