"""Data models for existinfra."""
from dataclasses import dataclass
from typing import Any, Dict, Optional

from existinfra.plan.recipe import NodeType
from existinfra.plan.resources import PkgType


@dataclass
class Node:
    """A machine of an existing-infrastructure cluster."""
    name: str
    host: str
    node_type: NodeType = NodeType.WORKER
    pkg_type: PkgType = PkgType.RPM
    user: str = 'root'
    port: int = 22
    ssh_key_path: Optional[str] = None

    def __post_init__(self):
        self.node_type = NodeType(self.node_type)
        self.pkg_type = PkgType(self.pkg_type)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        """Build a node from an inventory entry."""
        missing = [k for k in ("name", "host") if not data.get(k)]
        if missing:
            raise ValueError(f"Node entry is missing: {', '.join(missing)}")
        return cls(
            name=data["name"],
            host=data["host"],
            node_type=data.get("nodeType", NodeType.WORKER),
            pkg_type=data.get("pkgType", PkgType.RPM),
            user=data.get("user", "root"),
            port=int(data.get("port", 22)),
            ssh_key_path=data.get("sshKeyPath"),
        )
