"""Run one command on an SSH session channel and classify how it ended"""

import io
import logging
import select
import time
from typing import Optional, Tuple

import paramiko

from .base import Completed, SessionOutcome, TransportError

logger = logging.getLogger(__name__)

_READ_SIZE = 32768
# Longest single wait on the channel before the loop re-checks its state
_WAIT_SLICE = 1.0


def expiry(deadline: Optional[float]) -> Optional[float]:
    """Turn a relative deadline in seconds into an absolute monotonic time"""
    if deadline is None:
        return None
    return time.monotonic() + deadline


def remaining(expires_at: Optional[float], cap: float) -> float:
    """Seconds left before ``expires_at``, never more than ``cap``"""
    if expires_at is None:
        return cap
    return max(0.0, min(cap, expires_at - time.monotonic()))


def open_session(client: paramiko.SSHClient, timeout: Optional[float] = None) -> paramiko.Channel:
    """Open a command session channel on a connected client"""
    transport = client.get_transport()
    if transport is None or not transport.is_active():
        raise paramiko.SSHException("SSH connection is not active")
    return transport.open_session(timeout=timeout)


def _pump(channel: paramiko.Channel, stdout: io.BytesIO, stderr: io.BytesIO) -> bool:
    """Move whatever is buffered on the channel into the local buffers"""
    moved = False
    while channel.recv_ready():
        stdout.write(channel.recv(_READ_SIZE))
        moved = True
    while channel.recv_stderr_ready():
        stderr.write(channel.recv_stderr(_READ_SIZE))
        moved = True
    return moved


def _wait_time(expires_at: Optional[float]) -> float:
    if expires_at is None:
        return _WAIT_SLICE
    left = expires_at - time.monotonic()
    if left <= 0:
        raise TimeoutError("command did not finish before the deadline")
    return min(_WAIT_SLICE, left)


def _wait_readable(channel: paramiko.Channel, expires_at: Optional[float]) -> None:
    """Block until the channel has output, EOF or closes"""
    select.select([channel], [], [], _wait_time(expires_at))


def _wait_exit_status(channel: paramiko.Channel, expires_at: Optional[float]) -> None:
    channel.status_event.wait(_wait_time(expires_at))


def run_command(channel: paramiko.Channel, command: str,
                expires_at: Optional[float] = None) -> Tuple[bytes, bytes, SessionOutcome]:
    """Execute ``command`` on ``channel`` and collect its output

    stdout and stderr are drained together so a chatty stream cannot stall the
    other one. Output captured before a failure is returned alongside it.

    Args:
        channel: Freshly opened session channel
        command: Command line to run
        expires_at: Optional absolute monotonic time to give up at

    Returns:
        Tuple of (stdout, stderr, outcome) where outcome is Completed with the
        remote exit status, or TransportError if no exit status arrived
    """
    stdout = io.BytesIO()
    stderr = io.BytesIO()
    try:
        channel.exec_command(command)
        while not (channel.eof_received or channel.closed) \
                or channel.recv_ready() or channel.recv_stderr_ready():
            if not _pump(channel, stdout, stderr):
                _wait_readable(channel, expires_at)
        while not channel.exit_status_ready():
            _wait_exit_status(channel, expires_at)
        status = channel.recv_exit_status()
    except (OSError, EOFError, paramiko.SSHException) as e:
        logger.debug(f"Session failed while running command: {e}")
        return stdout.getvalue(), stderr.getvalue(), TransportError(e)

    if status < 0:
        # paramiko reports -1 when the channel closed without an exit-status
        cause = paramiko.SSHException("channel closed without reporting an exit status")
        return stdout.getvalue(), stderr.getvalue(), TransportError(cause)

    return stdout.getvalue(), stderr.getvalue(), Completed(status)
