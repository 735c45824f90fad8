"""Exception types for SSH command execution"""

from typing import List, Optional


class NodeSSHError(Exception):
    """Base class for all nodessh errors

    Attributes:
        host: Target "host:port" (if known)
        user: Remote user (if known)
        command: Command being run (if known)
        result: Partially populated ExecutionResult (if one exists)
    """

    def __init__(self, message: str, host: str = "", user: str = "", command: str = "",
                 result=None):
        super().__init__(message)
        self.host = host
        self.user = user
        self.command = command
        self.result = result


class UnsupportedProviderError(NodeSSHError):
    """No signer lookup is implemented for the provider"""

    def __init__(self, provider: str):
        super().__init__(f"signer lookup not implemented for provider {provider!r}")
        self.provider = provider


class KeyLoadError(NodeSSHError):
    """Private key file is missing, unreadable or not a usable private key"""

    def __init__(self, path: str, reason: str):
        super().__init__(f"failed to load private key {path}: {reason}")
        self.path = path


class IncompleteAddressError(NodeSSHError):
    """Not every node had an address of the chosen type

    The addresses that were found are still available as ``hosts``.
    """

    def __init__(self, message: str, hosts: Optional[List[str]] = None):
        super().__init__(message)
        self.hosts = hosts or []


class DialError(NodeSSHError):
    """Bastion stayed unreachable for the whole retry window

    ``errors`` holds the failure of every attempt, oldest first.
    """

    def __init__(self, message: str, errors: Optional[List[Exception]] = None, **context):
        super().__init__(message, **context)
        self.errors = errors or []


class ForwardError(NodeSSHError):
    """Bastion could not open a stream to the target"""


class HandshakeError(NodeSSHError):
    """SSH negotiation or authentication failed on one of the layers"""


class TransportFailure(NodeSSHError):
    """Session broke down before the remote command reported an exit status

    Whatever output arrived before the failure is kept in ``stdout``/``stderr``.
    """

    def __init__(self, message: str, stdout: bytes = b"", stderr: bytes = b"", **context):
        super().__init__(message, **context)
        self.stdout = stdout
        self.stderr = stderr


class RemoteCommandError(NodeSSHError):
    """Command failed on a node, either in transport or with a nonzero exit code"""
