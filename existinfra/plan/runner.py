"""The command execution contract consumed by resources.

A runner executes one shell command against one target node and returns its
standard output. Failures come in three distinct kinds:

- :class:`RunError` - the command ran and exited non-zero. Callers often give
  specific exit codes a meaning (exit 1 = "condition false").
- :class:`CommandCancelled` - the caller's context was cancelled or its
  deadline passed while the command was pending or running.
- :class:`TransportError` - the command could not be run at all.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Optional, Protocol

logger = logging.getLogger("existinfra.plan.runner")


class RunError(Exception):
    """A command exited with a non-zero status."""

    def __init__(self, exit_code: int, output: str = "", command: Optional[str] = None, stderr: str = ""):
        message = f"command exited with status {exit_code}"
        if command:
            message = f"{message}: {command}"
        if output.strip():
            message = f"{message}: {output.strip()}"
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output
        self.command = command
        self.stderr = stderr


class TransportError(Exception):
    """A command could not be delivered to or run on the target node."""


class CommandCancelled(Exception):
    """A command was aborted because its context was done."""


class ContextCancelled(CommandCancelled):
    pass


class DeadlineExceeded(CommandCancelled):
    pass


@dataclass(frozen=True)
class RunOptions:
    """Per-command options understood by the bundled runners.

    Fields left as None fall back to the runner's own configuration.
    """
    timeout: Optional[float] = None
    use_sudo: Optional[bool] = None


class Runner(Protocol):
    def run_command(self, ctx, command: str, options: Optional[RunOptions] = None) -> str:
        ...


class SerializedRunner:
    """Wraps a runner so that commands against its node never interleave."""

    def __init__(self, runner: Runner):
        self.runner = runner
        self._lock = threading.Lock()

    def run_command(self, ctx, command: str, options: Optional[RunOptions] = None) -> str:
        # Wait for the node in small steps so a cancelled caller does not
        # queue behind a long-running command.
        while not self._lock.acquire(timeout=0.1):
            ctx.check()
        try:
            ctx.check()
            return self.runner.run_command(ctx, command, options)
        finally:
            self._lock.release()

    def __repr__(self) -> str:
        return f"SerializedRunner({self.runner!r})"


def serialized(runner: Runner) -> SerializedRunner:
    """Return ``runner`` wrapped in a :class:`SerializedRunner` unless it already is one."""
    if isinstance(runner, SerializedRunner):
        return runner
    return SerializedRunner(runner)
