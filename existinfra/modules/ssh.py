"""
SSH command runner built on paramiko.
"""
import logging
import shlex
import socket
import threading
from typing import Dict, Optional

import paramiko
from paramiko.ssh_exception import NoValidConnectionsError, SSHException

from existinfra.models import Node
from existinfra.plan.runner import RunError, RunOptions, SerializedRunner, TransportError

logger = logging.getLogger("existinfra.ssh")

POLL_INTERVAL = 0.05
CHUNK_SIZE = 32768


def sudo_wrap(command: str) -> str:
    """Run ``command`` through a non-interactive sudo shell."""
    return f"sudo -n bash -c {shlex.quote(command)}"


class SSHRunner:
    """Runs commands on one node over a persistent SSH connection.

    The connection is opened lazily on the first command and reopened after
    a transport failure. A command is aborted (its channel closed) as soon as
    the caller's context is cancelled or its timeout passes.
    """

    def __init__(
        self,
        host: str,
        user: str = "root",
        key_path: Optional[str] = None,
        port: int = 22,
        connect_timeout: float = 10,
        command_timeout: Optional[float] = None,
        use_sudo: bool = False,
        client_factory=paramiko.SSHClient,
    ):
        """Initialize the runner.

        Args:
            host: Remote host to connect to
            user: Username for authentication
            key_path: Path to SSH private key (optional, agent keys are tried too)
            port: SSH port (default: 22)
            connect_timeout: Connection timeout in seconds
            command_timeout: Default per-command timeout in seconds
            use_sudo: Wrap commands in sudo by default
            client_factory: Callable creating the paramiko client
        """
        self.host = host
        self.user = user
        self.key_path = key_path
        self.port = port
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.use_sudo = use_sudo
        self.client_factory = client_factory
        self._client: Optional[paramiko.SSHClient] = None
        self._lock = threading.Lock()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __repr__(self) -> str:
        return f"SSHRunner({self.user}@{self.host}:{self.port})"

    def _get_client(self) -> paramiko.SSHClient:
        with self._lock:
            if self._client is not None:
                transport = self._client.get_transport()
                if transport is not None and transport.is_active():
                    return self._client
                self._client.close()
                self._client = None

            logger.debug(f"Connecting to {self.user}@{self.host}:{self.port}")
            client = self.client_factory()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            try:
                client.connect(
                    hostname=self.host,
                    port=self.port,
                    username=self.user,
                    key_filename=self.key_path,
                    timeout=self.connect_timeout,
                    banner_timeout=self.connect_timeout,
                    auth_timeout=self.connect_timeout,
                )
            except (paramiko.AuthenticationException, NoValidConnectionsError, SSHException, socket.error) as e:
                client.close()
                raise TransportError(f"Failed to connect to {self.user}@{self.host}:{self.port}: {e}") from e
            self._client = client
            return client

    def run_command(self, ctx, command: str, options: Optional[RunOptions] = None) -> str:
        """Execute ``command`` and return its stdout.

        Raises:
            RunError: the command exited non-zero
            CommandCancelled: ``ctx`` was cancelled or the timeout passed
            TransportError: the command could not be run
        """
        ctx.check()
        options = options or RunOptions()
        timeout = options.timeout if options.timeout is not None else self.command_timeout
        use_sudo = options.use_sudo if options.use_sudo is not None else self.use_sudo
        command_ctx = ctx.with_timeout(timeout) if timeout else ctx
        remote_command = sudo_wrap(command) if use_sudo else command

        logger.debug(f"[{self.host}] $ {command}")
        client = self._get_client()
        try:
            channel = client.get_transport().open_session()
            channel.exec_command(remote_command)
        except (SSHException, AttributeError, socket.error) as e:
            self.close()
            raise TransportError(f"Failed to run command on {self.host}: {e}") from e

        stdout, stderr = [], []
        try:
            while True:
                while channel.recv_ready():
                    stdout.append(channel.recv(CHUNK_SIZE))
                while channel.recv_stderr_ready():
                    stderr.append(channel.recv_stderr(CHUNK_SIZE))
                if channel.exit_status_ready() and not channel.recv_ready() and not channel.recv_stderr_ready():
                    break
                if command_ctx.wait(POLL_INTERVAL):
                    logger.warning(f"[{self.host}] aborting command: {command_ctx.err()}")
                    raise command_ctx.err()
            exit_code = channel.recv_exit_status()
        except socket.error as e:
            self.close()
            raise TransportError(f"Connection to {self.host} lost: {e}") from e
        finally:
            channel.close()

        output = b"".join(stdout).decode("utf-8", errors="replace")
        errors = b"".join(stderr).decode("utf-8", errors="replace")
        if exit_code == -1:
            self.close()
            raise TransportError(f"Connection to {self.host} closed without an exit status")
        if exit_code != 0:
            logger.debug(f"[{self.host}] exit {exit_code}: {errors.strip()}")
            raise RunError(exit_code, output, command=command, stderr=errors)
        return output

    def close(self) -> None:
        """Close the SSH connection."""
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None


class RunnerPool:
    """Thread-safe pool handing out one serialized runner per node."""

    def __init__(self, settings=None, runner_factory=SSHRunner):
        self.settings = settings
        self.runner_factory = runner_factory
        self.runners: Dict[str, SerializedRunner] = {}
        self.lock = threading.RLock()

    def get_runner(self, node: Node) -> SerializedRunner:
        """Get the runner for ``node``, creating it on first use.

        Commands sent through the returned runner never interleave, however
        many threads share it.
        """
        connection_id = f"{node.user}@{node.host}:{node.port}"
        with self.lock:
            if connection_id not in self.runners:
                ssh = self.settings.ssh if self.settings is not None else None
                logger.debug(f"Creating new runner for {connection_id}")
                runner = self.runner_factory(
                    host=node.host,
                    user=node.user,
                    key_path=node.ssh_key_path or (ssh.key_path if ssh else None),
                    port=node.port,
                    connect_timeout=ssh.connect_timeout if ssh else 10,
                    command_timeout=ssh.command_timeout if ssh else None,
                    use_sudo=ssh.use_sudo if ssh else False,
                )
                self.runners[connection_id] = SerializedRunner(runner)
            return self.runners[connection_id]

    def close_all(self) -> None:
        """Close all connections in the pool."""
        with self.lock:
            for connection_id, runner in self.runners.items():
                try:
                    runner.runner.close()
                except Exception as e:
                    logger.warning(f"Error closing connection {connection_id}: {e}")
            self.runners.clear()
