"""Typed deferred reclamation actions."""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import IntEnum


class CleanupGroup(IntEnum):
    """Kind-groups, in the order the registry executes them."""

    CUSTOM = 0
    PRIMARY_NAMESPACE = 1
    NAMESPACE = 2
    CRD = 3
    CLUSTER_RESOURCE = 4


@dataclass(frozen=True, kw_only=True)
class CommandCleanup:
    """Run an external command, e.g. ``helm uninstall``."""

    argv: Sequence[str]
    description: str = ""

    group = CleanupGroup.CUSTOM

    def __str__(self) -> str:
        return self.description or " ".join(self.argv)


@dataclass(frozen=True, kw_only=True)
class CallbackCleanup:
    """Await an in-process callback, e.g. closing a port-forward."""

    callback: Callable[[], Awaitable[object]] = field(repr=False)
    description: str

    group = CleanupGroup.CUSTOM

    def __str__(self) -> str:
        return self.description


@dataclass(frozen=True, kw_only=True)
class NamespaceCleanup:
    """Delete a namespace and wait until it is gone."""

    name: str
    primary: bool = False

    @property
    def group(self) -> CleanupGroup:
        """Primary namespace runs before additional ones."""
        if self.primary:
            return CleanupGroup.PRIMARY_NAMESPACE
        return CleanupGroup.NAMESPACE

    def __str__(self) -> str:
        return f"namespace {self.name}"


@dataclass(frozen=True, kw_only=True)
class CrdCleanup:
    """Delete a CustomResourceDefinition."""

    name: str

    group = CleanupGroup.CRD

    def __str__(self) -> str:
        return f"crd {self.name}"


@dataclass(frozen=True, kw_only=True)
class ClusterResourceCleanup:
    """Delete a cluster-scoped object such as a ClusterRole."""

    kind: str
    name: str

    group = CleanupGroup.CLUSTER_RESOURCE

    def __str__(self) -> str:
        return f"{self.kind} {self.name}"


type CleanupAction = (
    CommandCleanup
    | CallbackCleanup
    | NamespaceCleanup
    | CrdCleanup
    | ClusterResourceCleanup
)
