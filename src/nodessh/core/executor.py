"""Run commands on cluster nodes over SSH"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import paramiko

from nodessh.core.config import SSHSettings
from nodessh.core.hosts import Node, node_ssh_host
from nodessh.core.report import log_ssh_result
from nodessh.core.signer import resolve_signer
from nodessh.errors import NodeSSHError, RemoteCommandError, TransportFailure
from nodessh.transport.base import BaseTransport, ExecutionRequest, join_host_port
from nodessh.transport.bastion import RETRY_INTERVAL, RETRY_WINDOW, BastionTransport
from nodessh.transport.ssh import DIAL_TIMEOUT, DirectTransport

logger = logging.getLogger(__name__)


def _decode(data: bytes) -> str:
    # surrogateescape keeps undecodable bytes recoverable
    return data.decode("utf-8", errors="surrogateescape")


@dataclass
class ExecutionResult:
    """Outcome of one command on one host

    Fields are always present (empty/zero before the point of failure).
    exit_code is only meaningful when no exception was raised.
    """

    user: str = ""
    host: str = ""
    command: str = ""
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0

    @property
    def stdout_bytes(self) -> bytes:
        return self.stdout.encode("utf-8", errors="surrogateescape")

    @property
    def stderr_bytes(self) -> bytes:
        return self.stderr.encode("utf-8", errors="surrogateescape")


def transport_for(settings: SSHSettings) -> BaseTransport:
    """Bastion transport when a bastion is configured, direct otherwise"""
    if settings.bastion:
        return BastionTransport(
            settings.bastion,
            connect_timeout=settings.connect_timeout,
            retry_interval=settings.retry_interval,
            retry_window=settings.retry_window,
        )
    return DirectTransport(connect_timeout=settings.connect_timeout)


def execute(command: str, host: str, provider: str, settings: Optional[SSHSettings] = None,
            deadline: Optional[float] = None) -> ExecutionResult:
    """Synchronously run ``command`` on ``host`` ("host:port") as the configured user

    A command that exits nonzero is returned normally with its exit code.

    Args:
        command: Command line to run
        host: Target "host:port"
        provider: Provider name used to find the SSH key
        settings: SSH settings (defaults to SSHSettings.from_env())
        deadline: Optional overall time limit in seconds

    Returns:
        ExecutionResult of the completed command

    Raises:
        NodeSSHError subclass; its ``result`` holds the partially filled result
    """
    if settings is None:
        settings = SSHSettings.from_env()
    result = ExecutionResult(host=host, command=command)

    try:
        signer = resolve_signer(provider, settings)
    except NodeSSHError as e:
        logger.error(f"Error getting signer for provider {provider}: {e}")
        e.host, e.command, e.result = host, command, result
        raise

    result.user = settings.effective_user
    request = ExecutionRequest(command=command, host=host, user=result.user,
                               bastion=settings.bastion or None)
    try:
        output = transport_for(settings).run(request, signer, deadline)
    except TransportFailure as e:
        result.stdout, result.stderr = _decode(e.stdout), _decode(e.stderr)
        e.result = result
        raise
    except NodeSSHError as e:
        e.result = result
        raise

    result.stdout = _decode(output.stdout)
    result.stderr = _decode(output.stderr)
    result.exit_code = output.exit_code
    return result


def execute_via_bastion(command: str, user: str, bastion: str, host: str, credential: paramiko.PKey,
                        deadline: Optional[float] = None, connect_timeout: float = DIAL_TIMEOUT,
                        retry_interval: float = RETRY_INTERVAL,
                        retry_window: float = RETRY_WINDOW) -> Tuple[str, str, int]:
    """Run ``command`` on ``host`` as ``user``, tunnelled through ``bastion``

    Returns:
        Tuple of (stdout, stderr, exit_code); a nonzero exit code is not an error
    """
    transport = BastionTransport(bastion, connect_timeout=connect_timeout,
                                 retry_interval=retry_interval, retry_window=retry_window)
    request = ExecutionRequest(command=command, host=host, user=user, bastion=bastion)
    output = transport.run(request, credential, deadline)
    return _decode(output.stdout), _decode(output.stderr), output.exit_code


def node_exec(node_name: str, command: str, provider: str,
              settings: Optional[SSHSettings] = None) -> ExecutionResult:
    """Run ``command`` on an SSH-able node name (the SSH port is appended)"""
    if settings is None:
        settings = SSHSettings.from_env()
    return execute(command, join_host_port(node_name, settings.port), provider, settings)


def issue_ssh_command_with_result(command: str, provider: str, node: Node,
                                  settings: Optional[SSHSettings] = None,
                                  deadline: Optional[float] = None) -> ExecutionResult:
    """Run ``command`` on ``node`` and insist that it succeeds

    The result is always logged before any failure is raised.

    Raises:
        IncompleteAddressError: node has neither an external nor internal address
        RemoteCommandError: SSH failed or the command exited nonzero
    """
    if settings is None:
        settings = SSHSettings.from_env()

    logger.info(f"Getting external IP address for {node.name}")
    host = node_ssh_host(node, settings.port)

    logger.info(f"SSH {command!r} on {node.name}({host})")
    error = None
    try:
        result = execute(command, host, provider, settings, deadline)
    except NodeSSHError as e:
        error = e
        result = e.result or ExecutionResult(host=host, command=command)
    log_ssh_result(result)

    if error is not None or result.exit_code != 0:
        raise RemoteCommandError(
            f"failed running {command!r}: {error} (exit code {result.exit_code}, stderr {result.stderr})",
            host=host,
            user=result.user,
            command=command,
            result=result,
        ) from error
    return result


def issue_ssh_command(command: str, provider: str, node: Node,
                      settings: Optional[SSHSettings] = None) -> None:
    """Like issue_ssh_command_with_result, without returning the result"""
    issue_ssh_command_with_result(command, provider, node, settings)
