"""Plans upgrading the Kubernetes components of a node."""
import logging
from enum import Enum
from typing import Union

from ...utils.version import less_than, strip_prefix
from ..builder import Builder, Plan, depend_on
from ..resources import RPM, Deb, PkgType, Run

logger = logging.getLogger("existinfra.plan.recipe.upgrade")

# kubeadm >= 1.14.0 and < 1.16.0 needs "kubeadm upgrade node experimental-control-plane"
# on secondary masters; later versions detect the control plane themselves.
EXPERIMENTAL_CONTROL_PLANE_UNTIL = "v1.16.0"


class NodeType(str, Enum):
    """Role of a node during an upgrade."""
    ORIGINAL_MASTER = 'original-master'
    SECONDARY_MASTER = 'secondary-master'
    WORKER = 'worker'


def _package_steps(b: Builder, pkg_type: PkgType, k8s_version: str) -> None:
    # kubelet and kubectl need to be installed before kubeadm
    version = strip_prefix(k8s_version)
    if pkg_type in (PkgType.RPM, PkgType.RHEL):
        unlock = "yum versionlock delete 'kube*' || true"
        lock = "yum versionlock add 'kube*' || true"

        def package(name):
            return RPM(name=name, version=version, disable_excludes="kubernetes")
    elif pkg_type is PkgType.DEB:
        unlock = "apt-mark unhold 'kube*' || true"
        lock = "apt-mark hold 'kube*' || true"

        def package(name):
            return Deb(name=name, suffix=f"={version}-00")
    else:
        raise ValueError(f"unsupported package type: {pkg_type!r}")

    b.add_resource("upgrade:node-unlock-kubernetes", Run(unlock))
    b.add_resource(
        "upgrade:node-kubelet", package("kubelet"),
        depend_on("upgrade:node-unlock-kubernetes"))
    b.add_resource(
        "upgrade:node-kubectl", package("kubectl"),
        depend_on("upgrade:node-kubelet"))
    b.add_resource(
        "upgrade:node-install-kubeadm", package("kubeadm"),
        depend_on("upgrade:node-kubectl"))
    b.add_resource(
        "upgrade:node-lock-kubernetes", Run(lock),
        depend_on("upgrade:node-install-kubeadm"))


def needs_experimental_control_plane(k8s_version: str) -> bool:
    """Whether ``kubeadm upgrade node`` needs the legacy control plane flag.

    Versions that cannot be compared get the newer behaviour.
    """
    try:
        return less_than(k8s_version, EXPERIMENTAL_CONTROL_PLANE_UNTIL)
    except ValueError as e:
        logger.warning("Could not compare version %s: %s", k8s_version, e)
        return False


def kubeadm_upgrade_command(k8s_version: str, node_type: NodeType) -> str:
    if node_type is NodeType.ORIGINAL_MASTER:
        return f"kubeadm upgrade plan && kubeadm upgrade apply -y {k8s_version}"
    if node_type is NodeType.SECONDARY_MASTER:
        if needs_experimental_control_plane(k8s_version):
            return "kubeadm upgrade node experimental-control-plane"
        return "kubeadm upgrade node"
    if node_type is NodeType.WORKER:
        # kubeadm reads the desired kubelet version from the kubeadm-config ConfigMap
        return "kubeadm upgrade node phase kubelet-config"
    raise ValueError(f"unsupported node type: {node_type!r}")


def build_upgrade_plan(
    pkg_type: Union[PkgType, str],
    k8s_version: str,
    node_type: Union[NodeType, str],
) -> Plan:
    """Create the plan upgrading a node to ``k8s_version``.

    Every step depends on the previous one: unlock the package pin, install
    kubelet, kubectl and kubeadm at the exact version, lock the pin again,
    run the kubeadm upgrade for the node's role and restart kubelet.

    Args:
        pkg_type: Package manager family of the node
        k8s_version: Target version, e.g. ``v1.15.3``
        node_type: Role of the node

    Returns:
        Plan: the upgrade plan

    Raises:
        ValueError: for an unknown package or node type
    """
    pkg_type = PkgType(pkg_type)
    node_type = NodeType(node_type)

    b = Builder()
    _package_steps(b, pkg_type, k8s_version)
    b.add_resource(
        "upgrade:node-kubeadm-upgrade",
        Run(kubeadm_upgrade_command(k8s_version, node_type)),
        depend_on("upgrade:node-lock-kubernetes"))
    b.add_resource(
        "upgrade:node-restart-kubelet",
        Run("systemctl restart kubelet"),
        depend_on("upgrade:node-kubeadm-upgrade"))
    return b.plan()
