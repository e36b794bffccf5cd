"""Concrete resource variants."""
from .run import Output, Run
from .package import PkgType, RPM, Deb
from .osfacts import (
    DEFAULT_GATHERERS,
    FileFact,
    OSFacts,
    SELinuxMode,
    SELinuxStatus,
    gather_machine_id,
    gather_system_uuid,
    read_file_command,
)

__all__ = [
    'Output',
    'Run',
    'PkgType',
    'RPM',
    'Deb',
    'DEFAULT_GATHERERS',
    'FileFact',
    'OSFacts',
    'SELinuxMode',
    'SELinuxStatus',
    'gather_machine_id',
    'gather_system_uuid',
    'read_file_command',
]
