"""The resource interface implemented by every plan step."""
import abc
from typing import Any, Dict

from .state import EMPTY_STATE, Diff, State


class Resource(abc.ABC):
    """A unit of desired configuration on a node.

    Subclasses describe their payload in :meth:`state_fields`; :meth:`state`
    is derived from it and nothing else, so two resources with the same
    payload always produce equal states.
    """

    kind = "resource"

    @abc.abstractmethod
    def state_fields(self) -> Dict[str, Any]:
        """Return the declared payload of the resource."""

    def state(self) -> State:
        return State(self.state_fields())

    def query_state(self, ctx, runner) -> State:
        """Probe the node and return the observed state.

        Stateless resources have nothing to probe and report their declared
        state.
        """
        return self.state()

    @abc.abstractmethod
    def apply(self, ctx, runner, diff: Diff) -> bool:
        """Realise the resource; return True if the node was changed."""

    def undo(self, ctx, runner, current: State = EMPTY_STATE) -> None:
        """Revert a previous apply. Resources without an undo do nothing."""
        return None

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self.state_fields().items() if v is not None)
        return f"{type(self).__name__}({fields})"


class Noop(Resource):
    """A resource that does nothing; useful as a join point in a plan."""

    kind = "noop"

    def state_fields(self) -> Dict[str, Any]:
        return {}

    def apply(self, ctx, runner, diff: Diff) -> bool:
        return False
