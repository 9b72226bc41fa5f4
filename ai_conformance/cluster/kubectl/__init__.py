"""kubectl cluster backend module."""

from ai_conformance.cluster.kubectl.client import KubectlClusterClient
from ai_conformance.cluster.kubectl.config import KubectlConfig
from ai_conformance.cluster.kubectl.manifest import kubectl_manifest

__all__ = ["KubectlClusterClient", "KubectlConfig", "kubectl_manifest"]
