"""Runner implementations: SSH, local and dry-run."""
from .local import DryRunRunner, LocalRunner
from .ssh import RunnerPool, SSHRunner

__all__ = ['DryRunRunner', 'LocalRunner', 'RunnerPool', 'SSHRunner']
