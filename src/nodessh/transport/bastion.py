"""SSH transport that reaches the target through a bastion host

The command runs over two full SSH protocol layers: a control connection to
the bastion, a direct-tcpip channel from the bastion to the target, and a
second, independent SSH connection negotiated over that channel. Each layer is
closed in reverse order of opening no matter where a failure happens.
"""

import logging
import time
from contextlib import closing
from typing import List, Optional

import paramiko
from paramiko import SSHClient

from nodessh.errors import DialError, ForwardError, HandshakeError, TransportFailure
from .base import BaseTransport, CommandOutput, ExecutionRequest, split_host_port
from .session import expiry, open_session, remaining, run_command
from .ssh import DIAL_TIMEOUT, connect_client, finish, new_client

logger = logging.getLogger(__name__)

RETRY_INTERVAL = 5.0
RETRY_WINDOW = 20.0
# Smallest connect timeout handed to a retry near the end of the window
_MIN_RETRY_TIMEOUT = 1.0

# Originator address reported to the bastion for forwarded channels
_ORIGIN = ("127.0.0.1", 0)


class BastionTransport(BaseTransport):
    """Runs commands on a target reached through a bastion host"""

    def __init__(self, bastion: Optional[str] = None, connect_timeout: float = DIAL_TIMEOUT,
                 retry_interval: float = RETRY_INTERVAL, retry_window: float = RETRY_WINDOW):
        """Initialize bastion transport

        Args:
            bastion: Bastion "host:port", used when a request names none
            connect_timeout: Per-attempt limit for dial, banner and auth
            retry_interval: Pause between bastion dial attempts
            retry_window: How long after the first failed dial to keep retrying
        """
        self.bastion = bastion
        self.connect_timeout = connect_timeout
        self.retry_interval = retry_interval
        self.retry_window = retry_window

    def run(self, request: ExecutionRequest, credential: paramiko.PKey,
            deadline: Optional[float] = None) -> CommandOutput:
        bastion = request.bastion or self.bastion
        if not bastion:
            raise ValueError("no bastion host given")
        expires_at = expiry(deadline)

        with closing(self._dial_bastion(bastion, request, credential, expires_at)) as control:
            with closing(self._forward(control, bastion, request, expires_at)) as stream:
                with closing(self._handshake(stream, request, credential, expires_at)) as target:
                    with closing(self._open_session(target, request, expires_at)) as session:
                        logger.debug(f"{request.host}: executing via {bastion}: {request.command}")
                        stdout, stderr, outcome = run_command(session, request.command, expires_at)

        return finish(request, stdout, stderr, outcome)

    def _context(self, request: ExecutionRequest) -> dict:
        return dict(host=request.host, user=request.user, command=request.command)

    def _dial_bastion(self, bastion: str, request: ExecutionRequest, credential: paramiko.PKey,
                      expires_at: Optional[float]) -> SSHClient:
        """Open the control connection, retrying while the window allows

        Authentication failures are final; network and protocol failures are
        retried on a fixed schedule: attempt k starts ``k * retry_interval``
        seconds after the first failure, for as long as that falls inside
        ``retry_window``. Retries may not run past the end of the window.
        """
        host, port = split_host_port(bastion)
        errors: List[Exception] = []
        first_failure = window_ends = None

        while True:
            timeout = remaining(expires_at, self.connect_timeout)
            if window_ends is not None:
                timeout = max(_MIN_RETRY_TIMEOUT, min(timeout, window_ends - time.monotonic()))
            logger.debug(f"{request.host}: dialing bastion {request.user}@{bastion} (timeout {timeout:.1f}s)")
            client = new_client()
            try:
                connect_client(client, host, port, request.user, credential, timeout)
                if errors:
                    logger.info(f"Connected to bastion {bastion} after {len(errors) + 1} attempts")
                return client
            except paramiko.AuthenticationException as e:
                client.close()
                logger.error(f"Authentication to bastion {request.user}@{bastion} failed: {e}")
                raise HandshakeError(
                    f"error authenticating to bastion {request.user}@{bastion}: {e}",
                    **self._context(request)
                ) from e
            except (OSError, paramiko.SSHException) as e:
                client.close()
                errors.append(e)

            now = time.monotonic()
            if first_failure is None:
                first_failure = now
                window_ends = now + self.retry_window
                if expires_at is not None:
                    window_ends = min(window_ends, expires_at)
            next_attempt = first_failure + len(errors) * self.retry_interval
            if next_attempt > window_ends or now >= window_ends:
                logger.error(f"Giving up on bastion {bastion} after {len(errors)} attempts: {errors[-1]}")
                raise DialError(
                    f"error getting SSH client to {request.user}@{bastion}: {errors[-1]}",
                    errors=errors,
                    **self._context(request)
                ) from errors[-1]

            logger.warning(f"error dialing {request.user}@{bastion}: '{errors[-1]}', retrying")
            time.sleep(max(0.0, next_attempt - now))

    def _forward(self, control: SSHClient, bastion: str, request: ExecutionRequest,
                 expires_at: Optional[float]) -> paramiko.Channel:
        """Open a stream from the bastion to the target"""
        logger.debug(f"{request.host}: forwarding through {bastion}")
        try:
            transport = control.get_transport()
            if transport is None or not transport.is_active():
                raise paramiko.SSHException("bastion connection is not active")
            return transport.open_channel(
                "direct-tcpip",
                split_host_port(request.host),
                _ORIGIN,
                timeout=remaining(expires_at, self.connect_timeout),
            )
        except (OSError, paramiko.SSHException) as e:
            logger.error(f"Bastion {bastion} could not reach {request.host}: {e}")
            raise ForwardError(
                f"error dialing {request.host} from bastion: {e}", **self._context(request)
            ) from e

    def _handshake(self, stream: paramiko.Channel, request: ExecutionRequest,
                   credential: paramiko.PKey, expires_at: Optional[float]) -> SSHClient:
        """Negotiate a fresh SSH connection to the target over the forwarded stream"""
        logger.debug(f"{request.host}: handshaking over forwarded stream")
        host, port = split_host_port(request.host)
        client = new_client()
        try:
            connect_client(client, host, port, request.user, credential,
                           remaining(expires_at, self.connect_timeout), sock=stream)
        except (OSError, paramiko.SSHException) as e:
            client.close()
            logger.error(f"SSH handshake with {request.host} over bastion failed: {e}")
            raise HandshakeError(
                f"error creating forwarding connection {request.host} from bastion: {e}",
                **self._context(request)
            ) from e
        return client

    def _open_session(self, target: SSHClient, request: ExecutionRequest,
                      expires_at: Optional[float]) -> paramiko.Channel:
        try:
            return open_session(target, timeout=remaining(expires_at, self.connect_timeout))
        except (OSError, paramiko.SSHException) as e:
            raise TransportFailure(
                f"error creating session to {request.user}@{request.host} from bastion: '{e}'",
                **self._context(request)
            ) from e
