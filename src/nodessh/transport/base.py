"""Shared types and abstract base for SSH transports"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Tuple, Union

import paramiko

SSH_PORT = 22


def join_host_port(host: str, port: Union[int, str]) -> str:
    """Combine host and port into "host:port", bracketing IPv6 literals"""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def split_host_port(hostport: str, default_port: int = SSH_PORT) -> Tuple[str, int]:
    """Split "host:port" (or "[v6]:port") into host and integer port

    A bare host without a port gets ``default_port``.
    """
    if hostport.startswith("["):
        host, sep, rest = hostport[1:].partition("]")
        if not sep:
            raise ValueError(f"missing ']' in address {hostport!r}")
        if not rest:
            return host, default_port
        if not rest.startswith(":"):
            raise ValueError(f"unexpected text after ']' in address {hostport!r}")
        return host, int(rest[1:])

    if hostport.count(":") == 1:
        host, port = hostport.split(":")
        return host, int(port)
    # bare hostname or unbracketed IPv6 literal
    return hostport, default_port


@dataclass(frozen=True)
class ExecutionRequest:
    """One command to run as ``user`` on ``host`` ("host:port"), optionally via ``bastion``"""

    command: str
    host: str
    user: str
    bastion: Optional[str] = None


@dataclass(frozen=True)
class CommandOutput:
    """Raw output of a command that ran to completion"""

    stdout: bytes
    stderr: bytes
    exit_code: int


@dataclass(frozen=True)
class Completed:
    """Remote command reported an exit status"""

    exit_code: int


@dataclass(frozen=True)
class TransportError:
    """Session failed before an exit status was received"""

    cause: Exception


SessionOutcome = Union[Completed, TransportError]


class BaseTransport(ABC):
    """Abstract base for command execution transports"""

    @abstractmethod
    def run(self, request: ExecutionRequest, credential: paramiko.PKey,
            deadline: Optional[float] = None) -> CommandOutput:
        """Run a command on the remote host

        Args:
            request: What to run, where and as whom
            credential: Private key used for every authentication attempt
            deadline: Optional overall time limit in seconds

        Returns:
            Output of the completed command; a nonzero exit code is not an error

        Raises:
            NodeSSHError subclass describing the layer that failed
        """
        pass
