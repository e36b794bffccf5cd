"""Assembling resources into a validated, dependency ordered plan."""
import heapq
import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Tuple

from .errors import (
    CycleError,
    DuplicateResourceError,
    PlanExecutionError,
    UndoError,
    UnknownDependencyError,
)
from .resource import Resource
from .state import EMPTY_STATE, Diff, State

logger = logging.getLogger("existinfra.plan.builder")


@dataclass(frozen=True)
class DependOn:
    """Option for :meth:`Builder.add_resource` declaring dependencies."""
    names: Tuple[str, ...]


def depend_on(*names: str) -> DependOn:
    return DependOn(tuple(names))


class Builder:
    """Collects named resources and their dependencies.

    Example::

        b = Builder()
        b.add_resource("install", RPM(name="kubelet", version="1.15.3"))
        b.add_resource("restart", Run("systemctl restart kubelet"), depend_on("install"))
        plan = b.plan()
    """

    def __init__(self):
        self._resources: Dict[str, Resource] = {}
        self._dependencies: Dict[str, List[str]] = {}

    def add_resource(self, name: str, resource: Resource, *options: DependOn) -> "Builder":
        if name in self._resources:
            raise DuplicateResourceError(name)
        if not isinstance(resource, Resource):
            raise TypeError(f"resource {name!r} must be a Resource, got {type(resource).__name__}")
        deps: List[str] = []
        for option in options:
            for dep in option.names:
                if dep not in deps:
                    deps.append(dep)
        self._resources[name] = resource
        self._dependencies[name] = deps
        return self

    def plan(self) -> "Plan":
        """Validate the collected resources and return them as a plan.

        Raises:
            UnknownDependencyError: a dependency names no registered resource
            CycleError: the dependencies form a cycle
        """
        for name, deps in self._dependencies.items():
            for dep in deps:
                if dep not in self._resources:
                    raise UnknownDependencyError(name, dep)

        order = _toposort(list(self._resources), self._dependencies)
        return Plan(
            resources=[(name, self._resources[name]) for name in order],
            dependencies={name: tuple(self._dependencies[name]) for name in order},
        )


def _toposort(names: List[str], dependencies: Dict[str, List[str]]) -> List[str]:
    """Kahn's algorithm; among ready resources the earliest registered wins."""
    index = {name: i for i, name in enumerate(names)}
    pending = {name: len(dependencies[name]) for name in names}
    dependents: Dict[str, List[str]] = {name: [] for name in names}
    for name in names:
        for dep in dependencies[name]:
            dependents[dep].append(name)

    ready = [index[name] for name in names if pending[name] == 0]
    heapq.heapify(ready)
    order: List[str] = []
    while ready:
        name = names[heapq.heappop(ready)]
        order.append(name)
        for dependent in dependents[name]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, index[dependent])

    if len(order) != len(names):
        remaining = [name for name in names if pending[name] > 0]
        raise CycleError(_find_cycle(remaining, dependencies))
    return order


def _find_cycle(remaining: List[str], dependencies: Dict[str, List[str]]) -> List[str]:
    left = set(remaining)
    visiting: List[str] = []
    done = set()

    def visit(name: str) -> Optional[List[str]]:
        if name in visiting:
            return visiting[visiting.index(name):] + [name]
        if name in done:
            return None
        visiting.append(name)
        for dep in dependencies[name]:
            if dep in left:
                cycle = visit(dep)
                if cycle:
                    return cycle
        visiting.pop()
        done.add(name)
        return None

    for name in remaining:
        cycle = visit(name)
        if cycle:
            return cycle
    return remaining


class Plan(Resource):
    """An immutable, topologically ordered set of resources.

    A plan is itself a resource, so a plan assembled for one task (such as
    upgrading a node) can be nested as a single step of a larger plan.
    """

    kind = "plan"

    def __init__(self, resources: Sequence[Tuple[str, Resource]], dependencies: Dict[str, Tuple[str, ...]]):
        self._resources: Tuple[Tuple[str, Resource], ...] = tuple(resources)
        self._by_name: Dict[str, Resource] = dict(self._resources)
        self._dependencies = dict(dependencies)
        self._dependents: Dict[str, Tuple[str, ...]] = {
            name: tuple(n for n, _ in self._resources if name in self._dependencies[n])
            for name, _ in self._resources
        }

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self._resources]

    @property
    def edges(self) -> FrozenSet[Tuple[str, str]]:
        """Pairs of (dependency, dependent)."""
        return frozenset(
            (dep, name) for name, deps in self._dependencies.items() for dep in deps
        )

    def resources(self) -> List[Tuple[str, Resource]]:
        return list(self._resources)

    def get(self, name: str) -> Resource:
        return self._by_name[name]

    def dependencies(self, name: str) -> Tuple[str, ...]:
        return self._dependencies[name]

    def dependents(self, name: str) -> Tuple[str, ...]:
        return self._dependents[name]

    def __len__(self) -> int:
        return len(self._resources)

    def __iter__(self):
        return iter(self._resources)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def state_fields(self) -> Dict[str, Any]:
        return {name: resource.state() for name, resource in self._resources}

    def query_state(self, ctx, runner) -> State:
        return State({name: resource.query_state(ctx, runner) for name, resource in self._resources})

    def execute(self, ctx, runner, diff: Diff = Diff()):
        """Run the nested resources one at a time and return the ExecutionRecord."""
        from .executor import PlanExecutor

        previous = {
            name: value for name, value in diff.previous.items() if isinstance(value, State)
        }
        return PlanExecutor(max_workers=1).execute(self, ctx, runner, previous_states=previous)

    def apply(self, ctx, runner, diff: Diff) -> bool:
        record = self.execute(ctx, runner, diff)
        if record.failed:
            raise PlanExecutionError(
                f"nested plan failed at {record.failed_resource!r}: {record.error}",
                record=record,
                resource=record.failed_resource,
            ) from record.error
        return record.changed

    def undo_record(self, ctx, runner, record) -> None:
        """Undo what a run of this plan changed, as recorded in ``record``.

        Raises:
            UndoError: one or more nested undo operations failed
        """
        from .executor import undo_applied

        undo_applied(ctx, runner, self, record)
        if record.undo_errors:
            raise UndoError(list(record.undo_errors))

    def undo(self, ctx, runner, current: State = EMPTY_STATE) -> None:
        """Undo every nested resource in reverse order.

        Used when no execution record of the plan is at hand, e.g. for a plan
        serving as the undo resource of a :class:`Run`. The executor unwinds
        nested plans through :meth:`undo_record` instead.
        """
        errors = []
        for name, resource in reversed(self._resources):
            nested = current.get(name, EMPTY_STATE)
            try:
                resource.undo(ctx, runner, nested if isinstance(nested, State) else EMPTY_STATE)
            except Exception as e:
                logger.warning("Undo of %s failed: %s", name, e)
                errors.append((name, e))
        if errors:
            raise UndoError(errors)

    def to_dict(self) -> Dict[str, Any]:
        """Render the plan as JSON friendly data."""
        return {
            "resources": [
                {
                    "name": name,
                    "kind": resource.kind,
                    "dependsOn": list(self._dependencies[name]),
                    "state": resource.state().to_dict(),
                }
                for name, resource in self._resources
            ]
        }

    def to_dot(self, title: str = "plan") -> str:
        """Render the dependency graph in graphviz dot format."""
        lines = [f'digraph "{title}" {{']
        for name, resource in self._resources:
            lines.append(f'  "{name}" [label="{name}\\n({resource.kind})"];')
        for name, _ in self._resources:
            for dep in self._dependencies[name]:
                lines.append(f'  "{dep}" -> "{name}";')
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Plan({self.names!r})"
