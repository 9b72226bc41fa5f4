"""Cluster backend plugins discovered through entry points.

A backend package exposes a ``ClusterBackendManifest`` and registers it in
its pyproject.toml::

    [project.entry-points."ai_conformance.cluster_backends"]
    kubectl = "ai_conformance.cluster.kubectl:kubectl_manifest"
"""

from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from importlib.metadata import entry_points
from typing import Any

from pydantic import BaseModel

from ai_conformance.cluster.base import ClusterClient

ENTRY_POINT_GROUP = "ai_conformance.cluster_backends"

type ClientFactory[ConfigT] = Callable[
    [ConfigT], AbstractAsyncContextManager[ClusterClient]
]


class BackendNotFoundError(Exception):
    """Raised when no backend is registered under the requested key."""


@dataclass(frozen=True, kw_only=True)
class ClusterBackendManifest[ConfigT: BaseModel]:
    """Configuration class and client factory of one backend."""

    config_cls: type[ConfigT]
    client_factory: ClientFactory[ConfigT]

    def parse_config(self, config_json: str) -> ConfigT:
        """Validate a JSON document against the backend's configuration."""
        return self.config_cls.model_validate_json(config_json)

    def open_client(
        self, config_json: str = "{}"
    ) -> AbstractAsyncContextManager[ClusterClient]:
        """Parse ``config_json`` and open a client with it."""
        return self.client_factory(self.parse_config(config_json))


def available_backends() -> Sequence[str]:
    """Keys of every installed backend, sorted."""
    return sorted(entry.name for entry in entry_points(group=ENTRY_POINT_GROUP))


def load_backend_manifest(key: str) -> ClusterBackendManifest[Any]:
    """Load a cluster backend manifest by key.

    Args:
        key: The backend key as registered in pyproject.toml (e.g., "kubectl")

    Returns:
        The backend manifest instance

    Raises:
        BackendNotFoundError: If no backend with the given key is found

    """
    matches = entry_points(group=ENTRY_POINT_GROUP, name=key)
    for entry in matches:
        manifest: ClusterBackendManifest[Any] = entry.load()
        return manifest

    raise BackendNotFoundError(
        f"Cluster backend '{key}' not found. "
        f"Available backends: {', '.join(available_backends()) or 'none'}"
    )
