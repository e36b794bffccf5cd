"""Plans assembled for common node operations."""
from .upgrade import NodeType, build_upgrade_plan, kubeadm_upgrade_command, needs_experimental_control_plane

__all__ = [
    'NodeType',
    'build_upgrade_plan',
    'kubeadm_upgrade_command',
    'needs_experimental_control_plane',
]
