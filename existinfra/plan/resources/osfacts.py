"""Read-only resource gathering operating system facts from a node."""
import logging
import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from ..errors import FactBlankError, FactUnreadableError
from ..resource import Resource
from ..runner import RunError, TransportError
from ..state import EMPTY_STATE, Diff, State

logger = logging.getLogger("existinfra.plan.resources.osfacts")


class SELinuxStatus(Enum):
    UNKNOWN = 0
    NOT_INSTALLED = 1
    INSTALLED = 2

    @property
    def is_unknown(self) -> bool:
        return self is SELinuxStatus.UNKNOWN

    @property
    def is_not_installed(self) -> bool:
        return self is SELinuxStatus.NOT_INSTALLED

    @property
    def is_installed(self) -> bool:
        return self is SELinuxStatus.INSTALLED


class SELinuxMode(Enum):
    UNKNOWN = 0
    ENFORCING = 1
    PERMISSIVE = 2
    DISABLED = 3

    @property
    def is_unknown(self) -> bool:
        return self is SELinuxMode.UNKNOWN

    @property
    def is_enforcing(self) -> bool:
        return self is SELinuxMode.ENFORCING

    @property
    def is_permissive(self) -> bool:
        return self is SELinuxMode.PERMISSIVE

    @property
    def is_disabled(self) -> bool:
        return self is SELinuxMode.DISABLED


def read_file_command(*paths: str) -> str:
    """Build a command printing the first readable file of ``paths``.

    stderr is discarded, otherwise a missing first file would clobber the
    output of the next one.
    """
    return " || ".join(f"cat {shlex.quote(path)} 2>/dev/null" for path in paths)


@dataclass(frozen=True)
class FileFact:
    """A fact read from the first readable of several candidate files."""
    name: str
    paths: Tuple[str, ...]
    setter: Callable[["OSFacts", str], None]

    @property
    def command(self) -> str:
        return read_file_command(*self.paths)

    def __call__(self, ctx, facts: "OSFacts", runner) -> None:
        try:
            output = runner.run_command(ctx, self.command)
        except (RunError, TransportError) as e:
            raise FactUnreadableError(self.name) from e
        value = output.strip()
        if not value:
            raise FactBlankError(self.name)
        self.setter(facts, value)


GatherFact = Callable[[Any, "OSFacts", Any], None]


def _set_machine_id(facts: "OSFacts", value: str) -> None:
    facts.machine_id = value


def _set_system_uuid(facts: "OSFacts", value: str) -> None:
    facts.system_uuid = value


gather_machine_id = FileFact("MachineID", ("/etc/machine-id", "/var/lib/dbus/machine-id"), _set_machine_id)
gather_system_uuid = FileFact("SystemUUID", ("/sys/class/dmi/id/product_uuid", "/etc/machine-id"), _set_system_uuid)

DEFAULT_GATHERERS: Tuple[GatherFact, ...] = (gather_machine_id, gather_system_uuid)


class OSFacts(Resource):
    """Operating system properties of a node.

    ``apply`` only queries the node, so it never reports a change and has
    nothing to undo. Gathering stops at the first fact that cannot be
    determined.
    """

    kind = "os"

    def __init__(
        self,
        runner=None,
        gatherers: Sequence[GatherFact] = DEFAULT_GATHERERS,
        machine_id: str = "",
        system_uuid: str = "",
    ):
        self.runner = runner
        self.gatherers = tuple(gatherers)
        self.machine_id = machine_id
        self.system_uuid = system_uuid

    @classmethod
    def gather(cls, ctx, runner, gatherers: Sequence[GatherFact] = DEFAULT_GATHERERS) -> "OSFacts":
        """Create an :class:`OSFacts` populated from ``runner``'s node."""
        facts = cls(runner=runner, gatherers=gatherers)
        facts.apply(ctx, runner, Diff())
        return facts

    def state_fields(self) -> Dict[str, Any]:
        return {"MachineID": self.machine_id, "SystemUUID": self.system_uuid}

    def _query(self, ctx, runner) -> None:
        for gather in self.gatherers:
            try:
                gather(ctx, self, runner)
            except Exception as e:
                logger.error("error: %s", e)
                raise

    def query_state(self, ctx, runner) -> State:
        self._query(ctx, runner)
        return self.state()

    def apply(self, ctx, runner, diff: Diff) -> bool:
        self._query(ctx, runner)
        return False

    def undo(self, ctx, runner, current: State = EMPTY_STATE) -> None:
        return None

    def _runner(self, runner):
        runner = runner or self.runner
        if runner is None:
            raise ValueError("OSFacts has no runner")
        return runner

    def has_command(self, ctx, cmd: str, runner=None) -> bool:
        """Return whether ``cmd`` can be found on the node's PATH."""
        runner = self._runner(runner)
        try:
            runner.run_command(ctx, f"command -v -- {shlex.quote(cmd)} >/dev/null 2>&1")
        except RunError:
            return False
        return True

    def is_selinux_mode(self, ctx, mode: str, runner=None) -> bool:
        """Return whether SELinux currently runs in ``mode``.

        Raises:
            RunError: sestatus failed with a status other than 1
        """
        runner = self._runner(runner)
        try:
            runner.run_command(ctx, f"sestatus | grep 'Current mode' | grep {shlex.quote(mode)}")
        except RunError as e:
            if e.exit_code == 1:
                return False
            raise
        return True

    def get_selinux_status(self, ctx, runner=None) -> Tuple[SELinuxStatus, SELinuxMode]:
        """Determine whether SELinux is installed and which mode it is in.

        Results that cannot be decided are reported as UNKNOWN; only errors
        running the probes themselves are raised.
        """
        runner = self._runner(runner)
        if not self.has_command(ctx, "selinuxenabled", runner):
            return SELinuxStatus.NOT_INSTALLED, SELinuxMode.UNKNOWN

        try:
            runner.run_command(ctx, "selinuxenabled")
        except RunError as e:
            if e.exit_code == 1:
                return SELinuxStatus.INSTALLED, SELinuxMode.DISABLED
            logger.warning("selinuxenabled exited with %d, SELinux mode unknown", e.exit_code)
            return SELinuxStatus.INSTALLED, SELinuxMode.UNKNOWN

        for mode, value in (("permissive", SELinuxMode.PERMISSIVE), ("enforcing", SELinuxMode.ENFORCING)):
            try:
                if self.is_selinux_mode(ctx, mode, runner):
                    return SELinuxStatus.INSTALLED, value
            except RunError as e:
                logger.warning("Could not check SELinux %s mode: %s", mode, e)
                break
        return SELinuxStatus.INSTALLED, SELinuxMode.UNKNOWN

    def is_os_in_container_vm(self, ctx, runner=None) -> bool:
        """Return whether the node is a container posing as a VM (e.g. footloose)."""
        runner = self._runner(runner)
        try:
            output = runner.run_command(ctx, "cat /proc/1/environ")
        except RunError as e:
            output = e.output
        return "container=docker" in output
