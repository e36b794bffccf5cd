from .cluster import (
    CREATING,
    LOCAL_CONTROLLER,
    PAUSED,
    AnnotationUpdateError,
    ExistingInfraClusterReconciler,
    ReconcileError,
    ReconcileResult,
    is_paused,
)

__all__ = [
    'CREATING',
    'LOCAL_CONTROLLER',
    'PAUSED',
    'AnnotationUpdateError',
    'ExistingInfraClusterReconciler',
    'ReconcileError',
    'ReconcileResult',
    'is_paused',
]
