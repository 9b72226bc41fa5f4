"""kubectl cluster backend manifest."""

from ai_conformance.cluster.backends import ClusterBackendManifest
from ai_conformance.cluster.kubectl.client import KubectlClusterClient
from ai_conformance.cluster.kubectl.config import KubectlConfig

kubectl_manifest = ClusterBackendManifest(
    config_cls=KubectlConfig,
    client_factory=KubectlClusterClient.from_config,
)
