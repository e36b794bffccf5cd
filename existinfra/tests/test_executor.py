import threading
import time

import pytest

from existinfra.plan import (
    Builder,
    Context,
    ContextCancelled,
    PlanExecutionError,
    PlanExecutor,
    State,
    depend_on,
)
from existinfra.plan.resources import Run

from conftest import FakeRunner, RecordingResource


def diamond(events, **kwargs):
    b = Builder()
    b.add_resource("a", RecordingResource(events, "a"))
    b.add_resource("b", RecordingResource(events, "b", **kwargs), depend_on("a"))
    b.add_resource("c", RecordingResource(events, "c", **kwargs), depend_on("a"))
    b.add_resource("d", RecordingResource(events, "d"), depend_on("b", "c"))
    return b.plan()


def chain(events, specs):
    b = Builder()
    previous = None
    for label, kwargs in specs:
        options = [depend_on(previous)] if previous else []
        b.add_resource(label, RecordingResource(events, label, **kwargs), *options)
        previous = label
    return b.plan()


def test_each_resource_visited_once_in_dependency_order(ctx, fake_runner, events):
    record = PlanExecutor(max_workers=2).execute(diamond(events), ctx, fake_runner)

    assert not record.failed
    assert sorted(record.visited) == ["a", "b", "c", "d"]
    assert record.visited[0] == "a"
    assert record.visited[-1] == "d"
    assert [e for e in events if e[0] == "start"].count(("start", "a")) == 1


def test_independent_branches_run_concurrently(ctx, fake_runner, events):
    barrier = threading.Barrier(2, timeout=5)
    record = PlanExecutor(max_workers=2).execute(diamond(events, barrier=barrier), ctx, fake_runner)

    assert not record.failed
    assert not barrier.broken


def test_join_starts_after_all_dependencies_finish(ctx, fake_runner, events):
    PlanExecutor(max_workers=2).execute(diamond(events, delay=0.05), ctx, fake_runner)

    start_d = events.index(("start", "d"))
    assert events.index(("finish", "b")) < start_d
    assert events.index(("finish", "c")) < start_d


def test_failure_without_rollback_leaves_changes(ctx, fake_runner, events):
    plan = chain(events, [("a", {}), ("b", {"fail": True}), ("c", {})])
    record = PlanExecutor(rollback=False).execute(plan, ctx, fake_runner)

    assert record.failed
    assert record.failed_resource == "b"
    assert record.skipped == ["c"]
    assert record.applied == ["a"]
    assert ("undo", "a") not in events
    assert ("start", "c") not in events


def test_failure_with_rollback_undoes_changes(ctx, fake_runner, events):
    plan = chain(events, [("a", {}), ("b", {"fail": True}), ("c", {})])
    record = PlanExecutor(rollback=True).execute(plan, ctx, fake_runner)

    assert record.failed_resource == "b"
    assert record.rolled_back == ["a"]
    assert events == [
        ("start", "a"),
        ("finish", "a"),
        ("start", "b"),
        ("fail", "b"),
        ("undo", "a"),
    ]


def test_rollback_skips_unchanged_resources(ctx, fake_runner, events):
    plan = chain(events, [("a", {}), ("b", {"changed": False}), ("c", {"fail": True})])
    record = PlanExecutor(rollback=True).execute(plan, ctx, fake_runner)

    assert record.rolled_back == ["a"]
    assert ("undo", "b") not in events


def test_rollback_runs_in_reverse_completion_order(ctx, fake_runner, events):
    plan = chain(events, [("a", {}), ("b", {}), ("c", {}), ("d", {"fail": True})])
    record = PlanExecutor(rollback=True).execute(plan, ctx, fake_runner)

    assert record.rolled_back == ["c", "b", "a"]
    assert [e for e in events if e[0] == "undo"] == [("undo", "c"), ("undo", "b"), ("undo", "a")]


def test_undo_errors_are_collected_and_rollback_continues(ctx, fake_runner, events):
    plan = chain(events, [("a", {}), ("b", {"undo_fail": True}), ("c", {"fail": True})])
    record = PlanExecutor(rollback=True).execute(plan, ctx, fake_runner)

    assert record.rolled_back == ["a"]
    assert [name for name, _ in record.undo_errors] == ["b"]
    assert ("undo", "a") in events
    assert record.summary()["undo_errors"] == {"b": "b undo failed"}


def test_in_flight_resources_finish_after_failure(ctx, fake_runner, events):
    b = Builder()
    b.add_resource("fast", RecordingResource(events, "fast", fail=True))
    b.add_resource("slow", RecordingResource(events, "slow", delay=0.2))
    b.add_resource("after", RecordingResource(events, "after"), depend_on("slow"))
    record = PlanExecutor(max_workers=2).execute(b.plan(), ctx, fake_runner)

    assert record.failed_resource == "fast"
    assert ("finish", "slow") in events
    assert "slow" in record.visited
    assert record.skipped == ["after"]


def test_query_failure_fails_the_resource_without_apply(ctx, fake_runner, events):
    plan = chain(events, [("a", {"query_fail": True}), ("b", {})])
    record = PlanExecutor().execute(plan, ctx, fake_runner)

    assert record.failed_resource == "a"
    assert events == []
    assert record.skipped == ["b"]


def test_previous_state_is_passed_in_diff(ctx, fake_runner, events):
    resource = RecordingResource(events, "a")
    plan = Builder().add_resource("a", resource).plan()
    previous = State(label="old")

    record = PlanExecutor().execute(plan, ctx, fake_runner, previous_states={"a": previous})

    assert resource.diffs[0].previous == previous
    assert resource.diffs[0].current == resource.state()
    assert record.states == {"a": resource.state()}


def test_missing_previous_state_is_empty(ctx, fake_runner, events):
    resource = RecordingResource(events, "a")
    PlanExecutor().execute(Builder().add_resource("a", resource).plan(), ctx, fake_runner)

    assert resource.diffs[0].previous.is_empty()


def test_cancelled_context_starts_nothing(fake_runner, events):
    ctx = Context.background().with_cancel()
    ctx.cancel("operator abort")
    record = PlanExecutor().execute(diamond(events), ctx, fake_runner)

    assert record.failed
    assert record.failed_resource is None
    assert isinstance(record.error, ContextCancelled)
    assert record.skipped == ["a", "b", "c", "d"]
    assert events == []


def test_raise_for_failure(ctx, fake_runner, events):
    plan = chain(events, [("a", {"fail": True})])
    record = PlanExecutor().execute(plan, ctx, fake_runner)

    with pytest.raises(PlanExecutionError) as excinfo:
        record.raise_for_failure()
    assert excinfo.value.resource == "a"
    assert excinfo.value.record is record


def test_successful_record_summary(ctx, fake_runner, events):
    record = PlanExecutor().execute(chain(events, [("a", {}), ("b", {"changed": False})]), ctx, fake_runner)

    record.raise_for_failure()
    assert record.summary() == {
        "success": True,
        "applied": ["a"],
        "visited": ["a", "b"],
        "skipped": [],
        "failed": None,
        "error": None,
        "rolled_back": [],
        "undo_errors": {},
    }


def test_commands_never_overlap_on_one_node(ctx):
    lock = threading.Lock()
    active = []
    peak = []

    def slow(command):
        with lock:
            active.append(command)
            peak.append(len(active))
        time.sleep(0.05)
        with lock:
            active.remove(command)
        return ""

    runner = FakeRunner(default=slow)
    b = Builder()
    for i in range(4):
        b.add_resource(f"step-{i}", Run(f"echo {i}"))
    record = PlanExecutor(max_workers=4).execute(b.plan(), ctx, runner)

    assert not record.failed
    assert len(runner.commands) == 4
    assert max(peak) == 1


def test_max_workers_must_be_positive():
    with pytest.raises(ValueError):
        PlanExecutor(max_workers=0)


def nested_plan(events, specs):
    inner = Builder()
    previous = None
    for label, kwargs in specs:
        options = [depend_on(previous)] if previous else []
        inner.add_resource(label, RecordingResource(events, label, **kwargs), *options)
        previous = label
    return inner.plan()


def test_rollback_undoes_partially_applied_nested_plan(ctx, fake_runner, events):
    b = Builder()
    b.add_resource("x", RecordingResource(events, "x"))
    b.add_resource("nested", nested_plan(events, [("n1", {}), ("n2", {"fail": True})]), depend_on("x"))
    record = PlanExecutor(rollback=True).execute(b.plan(), ctx, fake_runner)

    assert record.failed_resource == "nested"
    assert events[-2:] == [("undo", "n1"), ("undo", "x")]
    assert record.rolled_back == ["nested", "x"]


def test_rollback_of_nested_plan_skips_unchanged_resources(ctx, fake_runner, events):
    b = Builder()
    b.add_resource("nested", nested_plan(events, [("n1", {"changed": False}), ("n2", {})]))
    b.add_resource("boom", RecordingResource(events, "boom", fail=True), depend_on("nested"))
    record = PlanExecutor(rollback=True).execute(b.plan(), ctx, fake_runner)

    assert [e for e in events if e[0] == "undo"] == [("undo", "n2")]
    assert record.rolled_back == ["nested"]


def test_nested_undo_errors_are_named_by_path(ctx, fake_runner, events):
    b = Builder()
    b.add_resource("nested", nested_plan(events, [("n1", {"undo_fail": True}), ("n2", {})]))
    b.add_resource("boom", RecordingResource(events, "boom", fail=True), depend_on("nested"))
    record = PlanExecutor(rollback=True).execute(b.plan(), ctx, fake_runner)

    assert [name for name, _ in record.undo_errors] == ["nested/n1"]
    assert [e for e in events if e[0] == "undo"] == [("undo", "n2"), ("undo", "n1")]


def test_undo_record_of_plan(ctx, fake_runner, events):
    plan = nested_plan(events, [("a", {}), ("b", {"changed": False}), ("c", {})])
    record = plan.execute(ctx, fake_runner)

    plan.undo_record(ctx, fake_runner, record)
    assert [e for e in events if e[0] == "undo"] == [("undo", "c"), ("undo", "a")]
