from . import api, cluster, node, plan

__all__ = ['api', 'cluster', 'node', 'plan']
