import pytest

from existinfra.plan import EMPTY_STATE, Diff, State, empty_diff
from existinfra.plan.resources import RPM, Run


def test_run_state_is_pure_function_of_script():
    assert Run("systemctl restart kubelet").state() == Run("systemctl restart kubelet").state()
    assert Run("systemctl restart kubelet").state() != Run("systemctl stop kubelet").state()


def test_run_state_ignores_output_slot():
    from existinfra.plan.resources import Output

    assert Run("hostname", output=Output()).state() == Run("hostname").state()


def test_run_state_includes_undo():
    plain = Run("touch /tmp/a")
    with_undo = Run("touch /tmp/a", undo_script="rm -f /tmp/a")
    assert plain.state() != with_undo.state()
    assert with_undo.state()["undoScript"] == "rm -f /tmp/a"


def test_state_is_order_independent_and_drops_none():
    assert State({"a": 1, "b": 2}) == State({"b": 2, "a": 1})
    assert State({"a": 1, "b": None}) == State(a=1)
    assert "b" not in State({"a": 1, "b": None})


def test_state_is_hashable_with_nested_values():
    state = State({"name": "kubelet", "labels": {"x": "y"}, "args": ["--a", "--b"]})
    assert hash(state) == hash(State({"args": ["--a", "--b"], "labels": {"x": "y"}, "name": "kubelet"}))
    assert state.to_dict() == {"name": "kubelet", "labels": {"x": "y"}, "args": ["--a", "--b"]}


def test_empty_state_and_diff():
    assert EMPTY_STATE.is_empty()
    assert State().is_empty()
    assert empty_diff().is_empty()
    assert empty_diff() == Diff(EMPTY_STATE, EMPTY_STATE)


def test_diff_reports_changed_fields():
    previous = RPM(name="kubelet", version="1.14.1").state()
    current = RPM(name="kubelet", version="1.15.3").state()
    diff = Diff(previous, current)
    assert not diff.is_empty()
    assert diff.changed_fields() == ["version"]
    assert Diff(current, current).is_empty()


def test_state_is_immutable():
    state = State(a=1)
    with pytest.raises(TypeError):
        state["a"] = 2
