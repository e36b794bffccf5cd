"""Running a plan against a node.

Resources start only once every dependency has completed successfully.
Resources on independent branches of the graph run concurrently on a thread
pool, but all commands go through one :class:`SerializedRunner`, so the
node only ever sees one command at a time.

The first failure stops the run: nothing new is started, resources already
in flight finish and are recorded, and the names that never started are
recorded as skipped. With rollback enabled, every resource that reported a
change is undone in reverse completion order.
"""
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from .builder import Plan
from .context import Context
from .errors import PlanExecutionError
from .resource import Resource
from .runner import Runner, serialized
from .state import EMPTY_STATE, Diff, State

logger = logging.getLogger("existinfra.plan.executor")


@dataclass
class ExecutionEntry:
    """Outcome of one resource in a plan run."""
    name: str
    changed: bool = False
    error: Optional[BaseException] = None
    state: State = EMPTY_STATE
    duration: float = 0.0
    nested: Optional["ExecutionRecord"] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class ExecutionRecord:
    """The ordered log of a single plan run; also its undo log."""
    entries: List[ExecutionEntry] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    rolled_back: List[str] = field(default_factory=list)
    undo_errors: List[Tuple[str, BaseException]] = field(default_factory=list)
    cancellation: Optional[BaseException] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def add(self, entry: ExecutionEntry) -> None:
        with self._lock:
            self.entries.append(entry)

    @property
    def visited(self) -> List[str]:
        return [entry.name for entry in self.entries]

    @property
    def applied(self) -> List[str]:
        """Names of the resources that changed the node, in completion order."""
        return [entry.name for entry in self.entries if entry.changed]

    @property
    def changed(self) -> bool:
        return any(entry.changed for entry in self.entries)

    @property
    def failed_entry(self) -> Optional[ExecutionEntry]:
        return next((entry for entry in self.entries if entry.error is not None), None)

    @property
    def failed_resource(self) -> Optional[str]:
        entry = self.failed_entry
        return entry.name if entry else None

    @property
    def error(self) -> Optional[BaseException]:
        entry = self.failed_entry
        if entry is not None:
            return entry.error
        return self.cancellation

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def states(self) -> Dict[str, State]:
        """Observed state per resource, suitable as ``previous_states`` of a later run."""
        return {entry.name: entry.state for entry in self.entries if entry.succeeded}

    def raise_for_failure(self) -> None:
        """Raise :class:`PlanExecutionError` if the run failed."""
        error = self.error
        if error is None:
            return
        where = f" at {self.failed_resource!r}" if self.failed_resource else ""
        raise PlanExecutionError(f"plan failed{where}: {error}", record=self, resource=self.failed_resource) from error

    def summary(self) -> Dict[str, object]:
        return {
            "success": not self.failed,
            "applied": self.applied,
            "visited": self.visited,
            "skipped": list(self.skipped),
            "failed": self.failed_resource,
            "error": str(self.error) if self.error else None,
            "rolled_back": list(self.rolled_back),
            "undo_errors": {name: str(err) for name, err in self.undo_errors},
        }


class PlanExecutor:
    """Executes plans with bounded concurrency and optional rollback."""

    def __init__(self, max_workers: int = 4, rollback: bool = False):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers
        self.rollback = rollback

    def execute(
        self,
        plan: Plan,
        ctx: Optional[Context],
        runner: Runner,
        previous_states: Optional[Mapping[str, State]] = None,
    ) -> ExecutionRecord:
        """Run every resource of ``plan`` in dependency order.

        Args:
            plan: The plan to run
            ctx: Context bounding the run (None for no cancellation)
            runner: Runner for the target node
            previous_states: Last recorded state per resource name

        Returns:
            ExecutionRecord: what ran, what changed and what failed
        """
        ctx = ctx or Context.background()
        runner = serialized(runner)
        previous = dict(previous_states or {})
        record = ExecutionRecord()

        position = {name: i for i, name in enumerate(plan.names)}
        waiting_on = {name: set(plan.dependencies(name)) for name in plan.names}
        started = set()
        stop = False

        logger.info("Executing plan with %d resources", len(plan))
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="plan") as pool:
            in_flight = {}

            def start_ready() -> None:
                for name in plan.names:
                    if name in started or waiting_on[name]:
                        continue
                    started.add(name)
                    future = pool.submit(self._run_resource, ctx, runner, name, plan.get(name), previous)
                    in_flight[future] = name

            if ctx.cancelled:
                record.cancellation = ctx.err()
                stop = True
            else:
                start_ready()

            while in_flight:
                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for future in sorted(done, key=lambda f: position[in_flight[f]]):
                    name = in_flight.pop(future)
                    entry = future.result()
                    record.add(entry)
                    if entry.error is not None:
                        stop = True
                        continue
                    for dependent in plan.dependents(name):
                        waiting_on[dependent].discard(name)

                if stop:
                    continue
                if ctx.cancelled:
                    record.cancellation = ctx.err()
                    logger.warning("Plan execution cancelled: %s", record.cancellation)
                    stop = True
                    continue
                start_ready()

        record.skipped = [name for name in plan.names if name not in started]
        if record.failed:
            logger.error(
                "Plan execution failed at %s: %s; skipped %d resource(s)",
                record.failed_resource or "<context>", record.error, len(record.skipped),
            )
            if self.rollback:
                self._rollback(ctx, runner, plan, record)
        else:
            logger.info("Plan execution finished, %d resource(s) changed", len(record.applied))
        return record

    def _run_resource(
        self, ctx: Context, runner: Runner, name: str, resource: Resource, previous: Mapping[str, State]
    ) -> ExecutionEntry:
        entry = ExecutionEntry(name=name)
        start = time.monotonic()
        logger.debug("Starting %s %s", resource.kind, name)
        try:
            ctx.check()
            observed = resource.query_state(ctx, runner)
            entry.state = observed
            diff = Diff(previous=previous.get(name, EMPTY_STATE), current=observed)
            if isinstance(resource, Plan):
                entry.nested = resource.execute(ctx, runner, diff)
                entry.changed = entry.nested.changed
                entry.nested.raise_for_failure()
            else:
                entry.changed = bool(resource.apply(ctx, runner, diff))
        except Exception as e:
            entry.error = e
            logger.error("Resource %s failed: %s", name, e)
        finally:
            entry.duration = time.monotonic() - start
        if entry.error is None:
            logger.info("Resource %s done (changed=%s, %.2fs)", name, entry.changed, entry.duration)
        return entry

    def _rollback(self, ctx: Context, runner: Runner, plan: Plan, record: ExecutionRecord) -> None:
        undo_applied(ctx, runner, plan, record)


def undo_applied(ctx: Context, runner: Runner, plan: Plan, record: ExecutionRecord) -> None:
    """Undo the resources of ``record`` that changed the node, newest first.

    Nested plans are unwound through their own records, so only the nested
    resources that changed are undone, including those of a nested plan that
    failed partway. Undo errors are collected in ``record.undo_errors`` and do
    not stop the unwind.
    """
    for entry in reversed(record.entries):
        if entry.nested is not None:
            undo_applied(ctx, runner, plan.get(entry.name), entry.nested)
            if entry.nested.rolled_back:
                record.rolled_back.append(entry.name)
            record.undo_errors.extend(
                (f"{entry.name}/{name}", err) for name, err in entry.nested.undo_errors
            )
            continue
        if not entry.changed:
            continue
        logger.info("Undoing %s", entry.name)
        try:
            plan.get(entry.name).undo(ctx, runner, entry.state)
            record.rolled_back.append(entry.name)
        except Exception as e:
            logger.error("Undo of %s failed: %s", entry.name, e)
            record.undo_errors.append((entry.name, e))
