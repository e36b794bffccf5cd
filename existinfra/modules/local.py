"""Runners executing commands on the local machine or nowhere at all."""
import logging
import shlex
import subprocess
import threading
from typing import Dict, List, Optional, Union

from existinfra.plan.runner import RunError, RunOptions, TransportError

logger = logging.getLogger("existinfra.local")

POLL_INTERVAL = 0.1


class LocalRunner:
    """Runs commands with ``bash -c`` on this machine."""

    def __init__(self, shell: str = "bash", command_timeout: Optional[float] = None):
        self.shell = shell
        self.command_timeout = command_timeout

    def __repr__(self) -> str:
        return "LocalRunner()"

    def run_command(self, ctx, command: str, options: Optional[RunOptions] = None) -> str:
        ctx.check()
        options = options or RunOptions()
        timeout = options.timeout if options.timeout is not None else self.command_timeout
        command_ctx = ctx.with_timeout(timeout) if timeout else ctx
        if options.use_sudo:
            command = f"sudo -n {self.shell} -c {shlex.quote(command)}"

        logger.debug(f"[local] $ {command}")
        try:
            process = subprocess.Popen(
                [self.shell, "-c", command],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise TransportError(f"Failed to start {self.shell}: {e}") from e

        while True:
            try:
                stdout, stderr = process.communicate(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if command_ctx.cancelled:
                    process.kill()
                    process.communicate()
                    logger.warning(f"[local] aborted command: {command_ctx.err()}")
                    raise command_ctx.err()

        if process.returncode != 0:
            raise RunError(process.returncode, stdout, command=command, stderr=stderr)
        return stdout


class DryRunRunner:
    """Logs commands instead of running them.

    ``responses`` maps a command to the output to return, or to an exception
    to raise; unknown commands return an empty string. Every command is kept
    in ``commands`` in the order it was received.
    """

    def __init__(self, responses: Optional[Dict[str, Union[str, Exception]]] = None, name: str = "dry-run"):
        self.responses = dict(responses or {})
        self.name = name
        self.commands: List[str] = []
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"DryRunRunner({self.name!r})"

    def run_command(self, ctx, command: str, options: Optional[RunOptions] = None) -> str:
        ctx.check()
        with self._lock:
            self.commands.append(command)
        logger.info(f"[{self.name}] would run: {command}")
        response = self.responses.get(command, "")
        if isinstance(response, Exception):
            raise response
        return response
