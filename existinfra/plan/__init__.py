"""Declarative resource plans.

A plan is a dependency ordered set of named resources. Each resource knows
how to query its state on a node, apply itself, and undo what it applied:

- runner: the command execution contract (RunError, TransportError, ...)
- context: cancellation and deadlines
- state: State snapshots and Diffs
- resource: the Resource base class
- builder: Builder and the immutable Plan
- executor: PlanExecutor and the ExecutionRecord undo log
- resources: Run, RPM, Deb and OSFacts
- recipe: plans assembled for common tasks (node upgrades)
"""
from .builder import Builder, DependOn, Plan, depend_on
from .context import Context
from .errors import (
    CycleError,
    DuplicateResourceError,
    FactBlankError,
    FactUnreadableError,
    PlanBuildError,
    PlanError,
    PlanExecutionError,
    QueryError,
    UndoError,
    UnknownDependencyError,
)
from .executor import ExecutionEntry, ExecutionRecord, PlanExecutor
from .resource import Noop, Resource
from .runner import (
    CommandCancelled,
    ContextCancelled,
    DeadlineExceeded,
    RunError,
    RunOptions,
    Runner,
    SerializedRunner,
    TransportError,
)
from .state import EMPTY_STATE, Diff, State, diff_states, empty_diff

__all__ = [
    'Builder',
    'DependOn',
    'Plan',
    'depend_on',
    'Context',
    'CycleError',
    'DuplicateResourceError',
    'FactBlankError',
    'FactUnreadableError',
    'PlanBuildError',
    'PlanError',
    'PlanExecutionError',
    'QueryError',
    'UndoError',
    'UnknownDependencyError',
    'ExecutionEntry',
    'ExecutionRecord',
    'PlanExecutor',
    'Noop',
    'Resource',
    'CommandCancelled',
    'ContextCancelled',
    'DeadlineExceeded',
    'RunError',
    'RunOptions',
    'Runner',
    'SerializedRunner',
    'TransportError',
    'EMPTY_STATE',
    'Diff',
    'State',
    'diff_states',
    'empty_diff',
]
