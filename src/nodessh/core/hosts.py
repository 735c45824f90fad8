"""Node inventory and SSH host resolution"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from nodessh.errors import IncompleteAddressError
from nodessh.transport.base import SSH_PORT, join_host_port

logger = logging.getLogger(__name__)

EXTERNAL_IP = "ExternalIP"
INTERNAL_IP = "InternalIP"


@dataclass(frozen=True)
class NodeAddress:
    """One address of a node, tagged with its kind (ExternalIP, InternalIP, ...)"""

    type: str
    address: str


@dataclass(frozen=True)
class Node:
    """Cluster node as reported by the inventory"""

    name: str
    addresses: List[NodeAddress] = field(default_factory=list)
    unschedulable: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        """Build a Node from an inventory mapping

        Addresses may be given as a list of ``{type, address}`` mappings or as
        ``external_ip``/``internal_ip`` shortcuts.
        """
        addresses = [
            NodeAddress(type=str(item.get("type", "")), address=str(item.get("address") or ""))
            for item in data.get("addresses") or []
        ]
        if data.get("external_ip"):
            addresses.append(NodeAddress(EXTERNAL_IP, str(data["external_ip"])))
        if data.get("internal_ip"):
            addresses.append(NodeAddress(INTERNAL_IP, str(data["internal_ip"])))
        return cls(name=str(data["name"]), addresses=addresses,
                   unschedulable=bool(data.get("unschedulable", False)))

    def address(self, address_type: str) -> str:
        """First non-empty address of the given type, or ''"""
        for item in self.addresses:
            if item.type == address_type and item.address:
                return item.address
        return ""


def node_addresses(nodes: Sequence[Node], address_type: str) -> List[str]:
    """One address of ``address_type`` per node that has one, in node order"""
    found = []
    for node in nodes:
        address = node.address(address_type)
        if address:
            found.append(address)
    return found


def resolve_ssh_hosts(nodes: Sequence[Node], port: int = SSH_PORT) -> List[str]:
    """Return SSH-able "host:port" strings for ``nodes``

    External addresses are used if any node has one; otherwise every node is
    looked up by internal address instead. The two kinds are never mixed.

    Raises:
        IncompleteAddressError: Some nodes had no address of the chosen kind.
            The hosts that were found are in the exception's ``hosts``.
    """
    addresses = node_addresses(nodes, EXTERNAL_IP)
    if not addresses:
        logger.info("No external IP address on nodes, falling back to internal IPs")
        addresses = node_addresses(nodes, INTERNAL_IP)

    hosts = [join_host_port(address, port) for address in addresses]

    if len(hosts) < len(nodes):
        names = ", ".join(node.name for node in nodes)
        raise IncompleteAddressError(
            f"only found {len(hosts)} IPs on nodes, but found {len(nodes)} nodes ({names})",
            hosts=hosts,
        )
    return hosts


def node_ssh_hosts(nodes: Sequence[Node], port: int = SSH_PORT) -> List[str]:
    """Like resolve_ssh_hosts, restricted to schedulable nodes"""
    schedulable = [node for node in nodes if not node.unschedulable]
    skipped = len(nodes) - len(schedulable)
    if skipped:
        logger.debug(f"Skipping {skipped} unschedulable node(s)")
    return resolve_ssh_hosts(schedulable, port)


def node_ssh_host(node: Node, port: int = SSH_PORT) -> str:
    """SSH "host:port" for a single node, external address first"""
    address = node.address(EXTERNAL_IP)
    if not address:
        logger.debug(f"No external IP on {node.name}, trying internal IP")
        address = node.address(INTERNAL_IP)
    if not address:
        raise IncompleteAddressError(f"couldn't find any IP address for node {node.name}")
    return join_host_port(address, port)
