"""Core SSH execution module"""

from .config import Config, SSHSettings
from .executor import (
    ExecutionResult,
    execute,
    execute_via_bastion,
    issue_ssh_command,
    issue_ssh_command_with_result,
    node_exec,
)
from .hosts import Node, NodeAddress, node_ssh_hosts, resolve_ssh_hosts
from .report import log_ssh_result
from .signer import resolve_signer

__all__ = [
    "Config",
    "ExecutionResult",
    "Node",
    "NodeAddress",
    "SSHSettings",
    "execute",
    "execute_via_bastion",
    "issue_ssh_command",
    "issue_ssh_command_with_result",
    "log_ssh_result",
    "node_exec",
    "node_ssh_hosts",
    "resolve_signer",
    "resolve_ssh_hosts",
]
