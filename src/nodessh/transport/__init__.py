"""SSH transports for running commands on cluster nodes"""

from .base import (
    SSH_PORT,
    BaseTransport,
    CommandOutput,
    Completed,
    ExecutionRequest,
    TransportError,
    join_host_port,
    split_host_port,
)
from .bastion import BastionTransport
from .ssh import DirectTransport

__all__ = [
    "SSH_PORT",
    "BaseTransport",
    "BastionTransport",
    "CommandOutput",
    "Completed",
    "DirectTransport",
    "ExecutionRequest",
    "TransportError",
    "join_host_port",
    "split_host_port",
]
