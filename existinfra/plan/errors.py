"""Exceptions raised while building and executing plans."""
from typing import List, Optional, Sequence, Tuple


class PlanError(Exception):
    """Base class for plan engine errors."""


class PlanBuildError(PlanError):
    """A plan could not be built from the registered resources."""


class DuplicateResourceError(PlanBuildError):
    def __init__(self, name: str):
        super().__init__(f"resource {name!r} is already registered")
        self.name = name


class UnknownDependencyError(PlanBuildError):
    def __init__(self, name: str, dependency: str):
        super().__init__(f"resource {name!r} depends on unknown resource {dependency!r}")
        self.name = name
        self.dependency = dependency


class CycleError(PlanBuildError):
    def __init__(self, cycle: Sequence[str]):
        super().__init__(f"dependency cycle detected: {' -> '.join(cycle)}")
        self.cycle = list(cycle)


class QueryError(PlanError):
    """Probing a node for the state of a resource failed."""


class FactUnreadableError(QueryError):
    """None of the candidate sources of a fact could be read."""

    def __init__(self, fact: str):
        super().__init__(f"Could not get {fact}")
        self.fact = fact


class FactBlankError(QueryError):
    """A fact source was readable but empty."""

    def __init__(self, fact: str):
        super().__init__(f"{fact} is blank")
        self.fact = fact


class UndoError(PlanError):
    """One or more undo operations failed during a rollback."""

    def __init__(self, errors: List[Tuple[str, BaseException]]):
        details = "; ".join(f"{name}: {err}" for name, err in errors)
        super().__init__(f"{len(errors)} undo operation(s) failed: {details}")
        self.errors = errors


class PlanExecutionError(PlanError):
    """A plan run stopped because a resource failed."""

    def __init__(self, message: str, record=None, resource: Optional[str] = None):
        super().__init__(message)
        self.record = record
        self.resource = resource
