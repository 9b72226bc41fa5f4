"""Configuration for the kubectl cluster backend."""

from pydantic import BaseModel


class KubectlConfig(BaseModel):
    """Configuration for the kubectl cluster backend."""

    kubectl_path: str = "kubectl"
    kubeconfig: str | None = None
    context: str | None = None
    # Upper bound for a single kubectl invocation that is not itself a wait
    request_timeout: float = 120
    port_forward_ready_timeout: float = 10
