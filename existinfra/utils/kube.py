import os
from pathlib import Path
from typing import Optional

from kubernetes import config
from kubernetes.client.exceptions import ApiException


def load_kubeconfig(path: Optional[str] = None, in_cluster: bool = False) -> str:
    """
    Load the Kubernetes client configuration.

    Tries, in order: the in-cluster service account (when ``in_cluster``),
    the KUBECONFIG_CONTENT env var, the given path, and the default
    kubeconfig locations. Returns a description of the source used.
    """
    if in_cluster:
        config.load_incluster_config()
        return "in-cluster"

    # CI/CD secret-based loading
    if "KUBECONFIG_CONTENT" in os.environ:
        temp_path = "/tmp/ci-kubeconfig.yaml"
        with open(temp_path, "w") as f:
            f.write(os.environ["KUBECONFIG_CONTENT"])
        config.load_kube_config(config_file=temp_path)
        return temp_path

    # Local path loading
    if path:
        resolved = Path(os.path.expanduser(path)).resolve()
        if not resolved.exists():
            raise FileNotFoundError(f"Kubeconfig not found: {resolved}")
        config.load_kube_config(config_file=str(resolved))
        return str(resolved)

    config.load_kube_config()
    return os.environ.get("KUBECONFIG", "~/.kube/config")


def is_conflict(error: Exception) -> bool:
    """Whether ``error`` is an API conflict (stale resourceVersion)."""
    return isinstance(error, ApiException) and error.status == 409


def is_not_found(error: Exception) -> bool:
    return isinstance(error, ApiException) and error.status == 404
