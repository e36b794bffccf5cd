import pytest

from existinfra.plan import (
    Builder,
    CycleError,
    DuplicateResourceError,
    Noop,
    PlanBuildError,
    UnknownDependencyError,
    depend_on,
)
from existinfra.plan.resources import Run


def test_plan_orders_dependencies_first():
    b = Builder()
    b.add_resource("restart", Run("systemctl restart kubelet"), depend_on("install"))
    b.add_resource("install", Run("yum -y install kubelet"))
    plan = b.plan()
    assert plan.names == ["install", "restart"]
    assert plan.dependencies("restart") == ("install",)
    assert plan.dependents("install") == ("restart",)
    assert plan.edges == frozenset({("install", "restart")})


def test_ties_are_broken_by_insertion_order():
    b = Builder()
    b.add_resource("a", Noop(), depend_on("c"))
    b.add_resource("b", Noop())
    b.add_resource("c", Noop())
    b.add_resource("d", Noop())
    assert b.plan().names == ["b", "c", "a", "d"]


def test_plan_is_deterministic():
    def build():
        b = Builder()
        b.add_resource("root", Noop())
        for name in ("x", "y", "z"):
            b.add_resource(name, Noop(), depend_on("root"))
        b.add_resource("join", Noop(), depend_on("z", "x"), depend_on("y"))
        return b.plan()

    assert build().names == build().names == ["root", "x", "y", "z", "join"]
    assert build().dependencies("join") == ("z", "x", "y")


def test_cycle_fails_at_build_time():
    b = Builder()
    b.add_resource("A", Noop(), depend_on("B"))
    b.add_resource("B", Noop(), depend_on("A"))
    with pytest.raises(CycleError) as excinfo:
        b.plan()
    assert set(excinfo.value.cycle) == {"A", "B"}
    assert excinfo.value.cycle[0] == excinfo.value.cycle[-1]


def test_self_dependency_is_a_cycle():
    b = Builder()
    b.add_resource("A", Noop(), depend_on("A"))
    with pytest.raises(CycleError):
        b.plan()


def test_cycle_behind_valid_prefix_is_reported():
    b = Builder()
    b.add_resource("ok", Noop())
    b.add_resource("x", Noop(), depend_on("ok", "z"))
    b.add_resource("y", Noop(), depend_on("x"))
    b.add_resource("z", Noop(), depend_on("y"))
    with pytest.raises(CycleError) as excinfo:
        b.plan()
    assert "ok" not in excinfo.value.cycle
    assert set(excinfo.value.cycle) == {"x", "y", "z"}


def test_unknown_dependency_fails_at_build_time():
    b = Builder()
    b.add_resource("restart", Run("systemctl restart kubelet"), depend_on("missing"))
    with pytest.raises(UnknownDependencyError) as excinfo:
        b.plan()
    assert excinfo.value.dependency == "missing"
    assert isinstance(excinfo.value, PlanBuildError)


def test_duplicate_name_is_rejected():
    b = Builder()
    b.add_resource("step", Noop())
    with pytest.raises(DuplicateResourceError):
        b.add_resource("step", Noop())


def test_non_resource_is_rejected():
    with pytest.raises(TypeError):
        Builder().add_resource("step", "echo hi")


def test_plan_renders_dict_and_dot():
    b = Builder()
    b.add_resource("first", Run("echo 1"))
    b.add_resource("second", Run("echo 2"), depend_on("first"))
    plan = b.plan()

    data = plan.to_dict()
    assert [r["name"] for r in data["resources"]] == ["first", "second"]
    assert data["resources"][1] == {
        "name": "second",
        "kind": "run",
        "dependsOn": ["first"],
        "state": {"script": "echo 2"},
    }

    dot = plan.to_dot()
    assert dot.startswith('digraph "plan" {')
    assert '"first" -> "second";' in dot


def test_plan_state_nests_resource_states():
    b = Builder()
    b.add_resource("first", Run("echo 1"))
    plan = b.plan()
    assert plan.state()["first"] == Run("echo 1").state()
    assert "first" in plan
    assert len(plan) == 1
