"""Resource running a shell script on the node."""
import logging
from typing import Any, Dict, Optional

from ..resource import Resource
from ..runner import RunError
from ..state import EMPTY_STATE, Diff, State

logger = logging.getLogger("existinfra.plan.resources.run")


class Output:
    """Slot receiving the stdout of a :class:`Run` for later resources."""

    def __init__(self, value: str = ""):
        self.value = value

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return f"Output({self.value!r})"


class Run(Resource):
    """Runs a script, which can be a single command.

    Run realises no state: ``apply`` executes the script every time it is
    called, whatever the diff, and reports a change when the script succeeds.
    Scripts may be any object whose ``str()`` is the command to run.
    """

    kind = "run"

    def __init__(
        self,
        script: Any,
        undo_script: Any = None,
        undo_resource: Optional[Resource] = None,
        output: Optional[Output] = None,
    ):
        self.script = script
        self.undo_script = undo_script
        self.undo_resource = undo_resource
        self.output = output

    def state_fields(self) -> Dict[str, Any]:
        return {
            "script": str(self.script),
            "undoScript": str(self.undo_script) if self.undo_script is not None else None,
            "undoResource": self.undo_resource.state() if self.undo_resource is not None else None,
        }

    def apply(self, ctx, runner, diff: Diff) -> bool:
        try:
            stdout = runner.run_command(ctx, str(self.script))
        except RunError as e:
            if self.output is not None:
                self.output.value = e.output
            raise
        if self.output is not None:
            self.output.value = stdout
        return True

    def undo(self, ctx, runner, current: State = EMPTY_STATE) -> None:
        if self.undo_script is not None:
            logger.debug("Running undo script: %s", self.undo_script)
            runner.run_command(ctx, str(self.undo_script))
        elif self.undo_resource is not None:
            self.undo_resource.undo(ctx, runner, EMPTY_STATE)
