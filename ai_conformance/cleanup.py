"""Registry of deferred reclamation actions."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field

from ai_conformance.cluster.base import ClusterClient
from ai_conformance.errors import WaitTimeoutError
from ai_conformance.models.cleanup import (
    CallbackCleanup,
    CleanupAction,
    CleanupGroup,
    ClusterResourceCleanup,
    CommandCleanup,
    CrdCleanup,
    NamespaceCleanup,
)
from ai_conformance.polling import wait_until
from ai_conformance.process import run_command

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class Registration:
    """A cleanup action with its registration order."""

    order: int
    action: CleanupAction


@dataclass(kw_only=True)
class CleanupRegistry:
    """Accumulates cleanup actions and executes them on demand.

    Groups run in fixed order: custom commands, the primary namespace,
    additional namespaces, CRDs, then cluster-scoped resources. Inside each
    group the most recently registered action runs first. Every action is
    attempted even when earlier ones fail.

    Custom actions are consumed when they run. Namespaces, CRDs and
    cluster-scoped resources stay registered because deleting them is
    idempotent, so the final pass also reclaims what the run recreated after
    the pre-flight pass.
    """

    cluster: ClusterClient
    primary_namespace: str
    namespace_delete_timeout: float = 120
    namespace_gone_timeout: float = 60
    namespace_poll_interval: float = 2
    command_timeout: float = 300
    _registrations: list[Registration] = field(
        default_factory=list, init=False, repr=False
    )
    _counter: int = field(default=0, init=False, repr=False)
    _executed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.register(NamespaceCleanup(name=self.primary_namespace, primary=True))

    @property
    def executed(self) -> bool:
        """Whether the one-shot final pass has run."""
        return self._executed

    @property
    def pending(self) -> Sequence[CleanupAction]:
        """Registered actions in execution order."""
        return [registration.action for registration in self._ordered()]

    def register(self, action: CleanupAction) -> None:
        """Append an action; duplicates are allowed."""
        self._registrations.append(Registration(order=self._counter, action=action))
        self._counter += 1

    def add_command(self, argv: Sequence[str], description: str = "") -> None:
        """Register an external command, e.g. ``helm uninstall``."""
        self.register(CommandCleanup(argv=tuple(argv), description=description))

    def add_callback(
        self, callback: Callable[[], Awaitable[object]], description: str
    ) -> None:
        """Register an in-process async action, e.g. closing a port-forward."""
        self.register(CallbackCleanup(callback=callback, description=description))

    def add_namespace(self, name: str) -> None:
        """Register an additional namespace."""
        self.register(NamespaceCleanup(name=name))

    def add_crd(self, name: str) -> None:
        """Register a CRD."""
        self.register(CrdCleanup(name=name))

    def add_cluster_resource(self, kind: str, name: str) -> None:
        """Register a cluster-scoped object (e.g. "clusterrole", "my-role")."""
        self.register(ClusterResourceCleanup(kind=kind, name=name))

    def namespaces(self) -> Sequence[str]:
        """Registered namespaces, primary first, without duplicates."""
        names: dict[str, None] = {}
        for action in self.pending:
            if isinstance(action, NamespaceCleanup):
                names.setdefault(action.name)
        return list(names)

    async def leftover_namespaces(self) -> Sequence[str]:
        """Registered namespaces that already exist in the cluster."""
        return [
            namespace
            for namespace in self.namespaces()
            if await self.cluster.namespace_exists(namespace)
        ]

    def _ordered(self) -> list[Registration]:
        return sorted(
            self._registrations,
            key=lambda entry: (entry.action.group, -entry.order),
        )

    async def execute_all(self) -> None:
        """Attempt every registered action once, in execution order."""
        for registration in self._ordered():
            action = registration.action
            if action.group is CleanupGroup.CUSTOM:
                self._registrations.remove(registration)
            try:
                await self._execute(action)
            except Exception as e:
                log.warning("⚠️ Cleanup of %s failed: %s", action, e)

    async def execute_once(self) -> bool:
        """Run ``execute_all`` unless it already ran; returns True if it ran."""
        if self._executed:
            log.debug("Cleanup already executed, skipping")
            return False
        self._executed = True
        await self.execute_all()
        return True

    async def _execute(self, action: CleanupAction) -> None:
        match action:
            case CommandCleanup(argv=argv):
                log.info("ℹ️ Executing: %s", action)
                await run_command(argv, timeout=self.command_timeout)
            case CallbackCleanup(callback=callback):
                log.info("ℹ️ Executing: %s", action)
                await callback()
            case NamespaceCleanup(name=name):
                await self._delete_namespace(name)
            case CrdCleanup(name=name):
                log.info("ℹ️ Deleting CRD: %s", name)
                await self.cluster.delete_resource("crd", name)
            case ClusterResourceCleanup(kind=kind, name=name):
                log.info("ℹ️ Deleting cluster resource: %s %s", kind, name)
                await self.cluster.delete_resource(kind, name)

    async def _delete_namespace(self, name: str) -> None:
        if not await self.cluster.namespace_exists(name):
            return

        log.info("ℹ️ Deleting namespace: %s", name)
        await self.cluster.delete_resource(
            "namespace", name, timeout=self.namespace_delete_timeout
        )
        await self.wait_for_namespace_deletion(name)

    async def wait_for_namespace_deletion(self, name: str) -> bool:
        """Block until a namespace is gone; returns False after the bound."""
        try:
            await wait_until(
                lambda: self.cluster.namespace_exists(name),
                lambda exists: not exists,
                timeout=self.namespace_gone_timeout,
                interval=self.namespace_poll_interval,
                description=f"namespace {name} deletion",
                on_progress=lambda state, elapsed: None,
            )
        except WaitTimeoutError:
            log.warning(
                "⚠️ Namespace %s still exists after %ss",
                name,
                self.namespace_gone_timeout,
            )
            return False
        return True
