"""Direct SSH transport: one connection, one command"""

import logging
from contextlib import closing
from typing import Optional

import paramiko
from paramiko import AutoAddPolicy, SSHClient

from nodessh.errors import DialError, HandshakeError, TransportFailure
from .base import BaseTransport, CommandOutput, ExecutionRequest, SessionOutcome, TransportError, split_host_port
from .session import expiry, open_session, remaining, run_command

logger = logging.getLogger(__name__)

# Per-attempt limit for TCP connect, banner exchange and authentication
DIAL_TIMEOUT = 150.0


def new_client() -> SSHClient:
    """Create a client that accepts any host key

    Host keys are only held in memory; nothing is read from or written to
    known_hosts.
    """
    client = SSHClient()
    client.set_missing_host_key_policy(AutoAddPolicy())
    return client


def connect_client(client: SSHClient, host: str, port: int, user: str, credential: paramiko.PKey,
                   timeout: float, sock=None) -> None:
    """Authenticate ``client`` to host:port with public key auth only

    Args:
        client: Unconnected client from new_client()
        host: Hostname or address of the SSH server
        port: SSH port
        user: Remote user
        credential: Private key to authenticate with
        timeout: Limit for connect, banner and auth, each
        sock: Already open transport (e.g. forwarded channel) to negotiate over
    """
    client.connect(
        hostname=host,
        port=port,
        username=user,
        pkey=credential,
        timeout=timeout,
        banner_timeout=timeout,
        auth_timeout=timeout,
        allow_agent=False,
        look_for_keys=False,
        sock=sock,
    )


def finish(request: ExecutionRequest, stdout: bytes, stderr: bytes,
           outcome: SessionOutcome) -> CommandOutput:
    """Turn a session outcome into CommandOutput or raise TransportFailure

    A nonzero exit status means the transport worked and the command failed,
    so it is returned as data.
    """
    if isinstance(outcome, TransportError):
        raise TransportFailure(
            f"failed running `{request.command}` on {request.user}@{request.host}: '{outcome.cause}'",
            stdout=stdout,
            stderr=stderr,
            host=request.host,
            user=request.user,
            command=request.command,
        ) from outcome.cause

    logger.debug(f"Command on {request.host} completed with exit code {outcome.exit_code}")
    return CommandOutput(stdout=stdout, stderr=stderr, exit_code=outcome.exit_code)


class DirectTransport(BaseTransport):
    """Runs commands over a single SSH connection to the target"""

    def __init__(self, connect_timeout: float = DIAL_TIMEOUT):
        """Initialize direct transport

        Args:
            connect_timeout: Per-connection limit for dial, banner and auth
        """
        self.connect_timeout = connect_timeout

    def run(self, request: ExecutionRequest, credential: paramiko.PKey,
            deadline: Optional[float] = None) -> CommandOutput:
        expires_at = expiry(deadline)
        host, port = split_host_port(request.host)
        context = dict(host=request.host, user=request.user, command=request.command)

        with closing(new_client()) as client:
            try:
                logger.debug(f"Connecting to {request.user}@{request.host}")
                connect_client(client, host, port, request.user, credential,
                               remaining(expires_at, self.connect_timeout))
            except paramiko.SSHException as e:
                logger.error(f"SSH handshake with {request.user}@{request.host} failed: {e}")
                raise HandshakeError(
                    f"error negotiating SSH with {request.user}@{request.host}: {e}", **context
                ) from e
            except OSError as e:
                logger.error(f"Failed to connect to {request.host}: {e}")
                raise DialError(
                    f"error dialing {request.user}@{request.host}: {e}", errors=[e], **context
                ) from e

            try:
                channel = open_session(client, timeout=remaining(expires_at, self.connect_timeout))
            except (OSError, paramiko.SSHException) as e:
                raise TransportFailure(
                    f"error creating session to {request.user}@{request.host}: '{e}'", **context
                ) from e

            with closing(channel):
                logger.debug(f"Executing on {request.host}: {request.command}")
                stdout, stderr, outcome = run_command(channel, request.command, expires_at)

        return finish(request, stdout, stderr, outcome)
