"""existinfra - provision and upgrade Kubernetes nodes on existing infrastructure.

Nodes are changed through plans: dependency ordered sets of resources
(scripts, packages, OS facts) executed over SSH with optional rollback.
"""

__version__ = "0.1.0"
