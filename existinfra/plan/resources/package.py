"""Package installation resources for RPM and Debian based nodes.

Both variants are idempotent: ``query_state`` reports the version actually
installed on the node, and ``apply`` skips the package manager when the
observed state already matches the declared one. There is no undo, as
package managers offer no reliable downgrade path.
"""
import abc
import logging
import shlex
from enum import Enum
from typing import Any, Dict, Optional

from ..errors import QueryError
from ..resource import Resource
from ..runner import RunError, TransportError
from ..state import Diff, State

logger = logging.getLogger("existinfra.plan.resources.package")


class PkgType(str, Enum):
    """Package manager family of a node."""
    RPM = 'rpm'
    RHEL = 'rhel'
    DEB = 'deb'


class _Package(Resource):
    query_command = ""

    def _installed_version(self, ctx, runner, name: str) -> Optional[str]:
        """Return the installed version of ``name``, or None if it is absent."""
        cmd = self.query_command.format(name=shlex.quote(name))
        try:
            output = runner.run_command(ctx, cmd)
        except RunError:
            return None
        except TransportError as e:
            raise QueryError(f"Could not query package {name}: {e}") from e
        return self._parse_version(output)

    def _parse_version(self, output: str) -> Optional[str]:
        lines = [line.strip() for line in output.splitlines() if line.strip()]
        return lines[-1] if lines else None

    def apply(self, ctx, runner, diff: Diff) -> bool:
        if diff.current == self.state():
            logger.info("%s is already installed, skipping", self.describe())
            return False
        logger.info("Installing %s", self.describe())
        runner.run_command(ctx, self.install_command())
        return True

    @abc.abstractmethod
    def describe(self) -> str:
        """Return the package spec passed to the package manager."""

    @abc.abstractmethod
    def install_command(self) -> str:
        """Return the command installing the declared package."""


class RPM(_Package):
    """An RPM package pinned to an exact version, installed with yum."""

    kind = "rpm"
    query_command = "rpm -q --queryformat '%{{VERSION}}\\n' {name}"

    def __init__(self, name: str, version: Optional[str] = None, disable_excludes: Optional[str] = None):
        self.name = name
        self.version = version
        self.disable_excludes = disable_excludes

    def state_fields(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "disableExcludes": self.disable_excludes,
        }

    def query_state(self, ctx, runner) -> State:
        installed = self._installed_version(ctx, runner, self.name)
        fields = self.state_fields()
        if installed is None:
            fields["version"] = ""
        elif self.version:
            fields["version"] = installed
        return State(fields)

    def describe(self) -> str:
        return f"{self.name}-{self.version}" if self.version else self.name

    def install_command(self) -> str:
        parts = ["yum", "-y", "install"]
        if self.disable_excludes:
            parts.append(f"--disableexcludes={self.disable_excludes}")
        parts.append(shlex.quote(self.describe()))
        return " ".join(parts)


class Deb(_Package):
    """A Debian package installed with apt-get.

    ``suffix`` is appended to the package name, e.g. ``=1.15.3-00`` to pin a
    version.
    """

    kind = "deb"
    query_command = "dpkg-query -W -f='${{Status}} ${{Version}}\\n' {name}"

    def __init__(self, name: str, suffix: str = ""):
        self.name = name
        self.suffix = suffix

    def state_fields(self) -> Dict[str, Any]:
        return {"name": self.name, "suffix": self.suffix}

    def _parse_version(self, output: str) -> Optional[str]:
        # "install ok installed 1.15.3-00"; removed packages keep a line too
        for line in output.splitlines():
            words = line.split()
            if len(words) == 4 and words[2] == "installed":
                return words[3]
        return None

    def query_state(self, ctx, runner) -> State:
        installed = self._installed_version(ctx, runner, self.name)
        if installed is None:
            return State(name=self.name, suffix=self.suffix, installed=False)
        if not self.suffix:
            return self.state()
        return State(name=self.name, suffix=f"={installed}")

    def describe(self) -> str:
        return f"{self.name}{self.suffix}"

    def install_command(self) -> str:
        return (
            "DEBIAN_FRONTEND=noninteractive apt-get install -qq -y "
            "--allow-downgrades --allow-change-held-packages "
            + shlex.quote(self.describe())
        )
